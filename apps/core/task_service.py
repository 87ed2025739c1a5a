"""
TaskService - Abstraction layer for async task execution.

This module provides a platform-agnostic interface for executing background
tasks such as resident/invite notifications. The actual backend is
determined by the TASK_BACKEND setting.

Usage:
    from apps.core.task_service import TaskService

    TaskService.notify_invite_created(invite_id=uuid)

Environment Configuration:
    TASK_BACKEND=local   # Sync execution (development, tests)
    TASK_BACKEND=celery  # Celery + Redis (production)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict
from uuid import UUID

from django.conf import settings

logger = logging.getLogger(__name__)


class TaskServiceInterface(ABC):
    """
    Abstract interface for async task execution.

    Implementations:
    - LocalTaskService: Sync execution for development/testing
    - CeleryTaskService: Celery + Redis
    """

    @abstractmethod
    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """
        Queue a task for async execution.

        Args:
            task_name: Identifier for the task handler
            payload: Data to pass to the task
            delay_seconds: Delay before execution (0 = immediate)

        Returns:
            Task ID for tracking
        """
        pass


def _get_backend() -> TaskServiceInterface:
    """Get the configured task backend based on the TASK_BACKEND setting."""
    backend = getattr(settings, 'TASK_BACKEND', 'local')

    if backend == 'local':
        from apps.core.backends.local_backend import LocalTaskService
        return LocalTaskService()
    elif backend == 'celery':
        from apps.core.backends.celery_backend import CeleryTaskService
        return CeleryTaskService()
    else:
        raise ValueError(f"Unknown TASK_BACKEND: {backend}")


class TaskService:
    """
    Facade for sending async tasks.

    This class provides static methods for each task type,
    delegating to the configured backend.
    """

    @staticmethod
    def notify_invite_created(invite_id: UUID) -> str:
        """
        Queue delivery of a new invite to its email/phone.

        Used by: Identity app after an invite is committed.
        """
        logger.info(f"Queueing send_invite_notification task for invite {invite_id}")
        return _get_backend().send_task(
            task_name="send_invite_notification",
            payload={"invite_id": str(invite_id)}
        )

    @staticmethod
    def notify_resident_added(resident_id: UUID) -> str:
        """
        Queue the "resident added" notification.

        Used by: Registry app after a resident is committed.
        """
        logger.info(f"Queueing send_resident_added_notification task for resident {resident_id}")
        return _get_backend().send_task(
            task_name="send_resident_added_notification",
            payload={"resident_id": str(resident_id)}
        )

    @staticmethod
    def expire_invites() -> str:
        """
        Queue the sweep that deactivates expired invites.

        Used by: Scheduled job (hourly).
        """
        logger.info("Queueing expire_invites task")
        return _get_backend().send_task(
            task_name="expire_invites",
            payload={}
        )
