"""Celery tasks for Identity app."""
import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .invite_service import InviteService
from .models import Invite

logger = logging.getLogger(__name__)


def build_invite_link(invite: Invite) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/invite/{invite.token}"


@shared_task
def send_invite_notification(invite_id):
    """
    Deliver the invite link. Email goes through Django's mail API;
    phone-only invites are handed to the SMS collaborator via the log.
    """
    invite = Invite.objects.filter(id=invite_id, deleted_at__isnull=True).select_related('unit__condo').first()
    if invite is None or not invite.is_active:
        return f"Invite {invite_id} is no longer active"

    unit = invite.unit
    if invite.email:
        send_mail(
            subject=f"Invitation to {unit.condo.name}",
            message=(
                f"You have been invited to join unit {unit.number} at {unit.condo.name}.\n\n"
                f"Accept the invitation: {build_invite_link(invite)}\n\n"
                f"This link expires on {invite.expires_at:%Y-%m-%d}."
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[invite.email],
        )
        return f"Sent invite {invite_id} to email"

    logger.info(f"SMS delivery requested for invite {invite_id} (token {invite.token_prefix}...)")
    return f"Queued invite {invite_id} for SMS"


@shared_task
def expire_invites():
    """
    Run hourly to deactivate invites past their expiry.

    Returns count of expired invites for logging.
    """
    count = InviteService.expire_invites()
    return f"Expired {count} invites"
