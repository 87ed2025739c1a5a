import logging

from django.contrib.auth.signals import user_logged_in
from django.dispatch import Signal, receiver

from apps.core.task_service import TaskService
from apps.governance.audit_service import AuditAction, log_action

logger = logging.getLogger(__name__)

# Sent after commit with invite=<Invite>
invite_created = Signal()

# Sent after commit with invite=<Invite>, resident=<Resident>, user_id=<UUID>
invite_accepted = Signal()


@receiver(invite_created)
def handle_invite_created(sender, invite, **kwargs):
    """
    Queue delivery of the invite link (email, or SMS collaborator for phone-only invites).
    """
    try:
        TaskService.notify_invite_created(invite.id)
    except Exception as e:
        logger.error(f"Signal: Failed to queue invite notification for {invite.id}: {e}")


@receiver(invite_accepted)
def handle_invite_accepted(sender, invite, resident, user_id, **kwargs):
    logger.info(
        f"Signal: Invite {invite.token_prefix}... accepted by user {user_id} "
        f"(resident {resident.id}, {invite.used_count}/{invite.max_uses or '∞'})"
    )


@receiver(user_logged_in)
def log_user_login(sender, user, request, **kwargs):
    """
    Log user login events to the global Audit Log.
    """
    if not user:
        return

    ip = request.META.get('REMOTE_ADDR') if request else 'Unknown'
    user_agent = request.META.get('HTTP_USER_AGENT', '') if request else ''

    log_action(
        company_id=None,
        action=AuditAction.USER_LOGIN,
        target_type="User",
        target_id=user.id,
        target_label=str(user),
        performed_by=user,
        context={
            "ip": ip,
            "user_agent": user_agent,
            "method": "Signal"
        }
    )
