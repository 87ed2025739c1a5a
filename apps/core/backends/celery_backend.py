"""
Celery Task Backend - Async execution via Celery + Redis.

Usage:
    Set TASK_BACKEND=celery in your .env file.
    Requires Redis and Celery worker running.
"""

import uuid
import logging
from typing import Any, Dict
from apps.core.task_service import TaskServiceInterface

logger = logging.getLogger(__name__)


TASK_MAP = {
    "send_invite_notification": ("apps.identity.tasks.send_invite_notification", "invite_id"),
    "send_resident_added_notification": ("apps.registry.tasks.send_resident_added_notification", "resident_id"),
    "expire_invites": ("apps.identity.tasks.expire_invites", None),
}


def _get_celery_task(task_name: str):
    """Get the Celery task function and its argument name for a task name."""
    entry = TASK_MAP.get(task_name)
    if not entry:
        raise ValueError(f"No Celery task mapped for: {task_name}")

    task_path, arg_name = entry
    from celery import current_app
    return current_app.tasks.get(task_path), arg_name


class CeleryTaskService(TaskServiceInterface):
    """
    Execute tasks via Celery + Redis.
    """

    def send_task(
        self,
        task_name: str,
        payload: Dict[str, Any],
        delay_seconds: int = 0,
    ) -> str:
        """Queue task via Celery."""
        task_id = str(uuid.uuid4())

        logger.info(f"[CELERY] Queueing task {task_name} (id={task_id})")

        task, arg_name = _get_celery_task(task_name)

        if task is None:
            logger.error(f"[CELERY] Task not found: {task_name}")
            raise ValueError(f"Celery task not found: {task_name}")

        args = [payload.get(arg_name)] if arg_name else []

        if delay_seconds > 0:
            task.apply_async(args=args, countdown=delay_seconds, task_id=task_id)
        else:
            task.apply_async(args=args, task_id=task_id)

        return task_id
