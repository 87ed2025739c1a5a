"""Celery tasks for Registry app."""
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .models import Resident


@shared_task
def send_resident_added_notification(resident_id):
    """
    Welcome a new resident to their unit.
    """
    resident = Resident.objects.active().filter(id=resident_id).select_related('user', 'unit__condo').first()
    if resident is None:
        return f"Resident {resident_id} is no longer active"

    if not resident.user.email:
        return f"Resident {resident_id} has no email"

    unit = resident.unit
    send_mail(
        subject=f"Welcome to {unit.condo.name}",
        message=f"You are now registered as a resident of unit {unit.number} at {unit.condo.name}.",
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[resident.user.email],
    )
    return f"Sent welcome to resident {resident_id}"
