import logging

from django.dispatch import Signal, receiver

from apps.core.task_service import TaskService

logger = logging.getLogger(__name__)

# Sent after commit with resident=<Resident>
resident_added = Signal()


@receiver(resident_added)
def handle_resident_added(sender, resident, **kwargs):
    """
    Queue the welcome notification for a new resident.
    """
    try:
        TaskService.notify_resident_added(resident.id)
    except Exception as e:
        logger.error(f"Signal: Failed to queue resident notification for {resident.id}: {e}")
