"""
Centralized audit logging service.

Use log_action() to record any critical mutation. It is fire-and-forget:
it will never raise, so a logging failure will never break the calling
request or roll back the caller's transaction.

Usage:
    from apps.governance.audit_service import log_action, AuditAction

    log_action(
        company_id=condo.company_id,
        action=AuditAction.MOVE_OUT_RESIDENT,
        target_type="Resident",
        target_id=resident.id,
        target_label=str(resident),
        performed_by=user,
        context={"unit_id": str(resident.unit_id)},
    )
"""
import logging
from uuid import UUID
from typing import Optional

from django.db import transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """
    Canonical string constants for audit log actions.
    Prevents scattered string literals and typos across apps.
    """
    # ── Identity ──────────────────────────────────────────────────────
    USER_LOGIN = "USER_LOGIN"
    GRANT_ROLE = "GRANT_ROLE"
    REVOKE_ROLE = "REVOKE_ROLE"

    # ── Residents ─────────────────────────────────────────────────────
    CREATE_RESIDENT = "CREATE_RESIDENT"
    UPDATE_RESIDENT = "UPDATE_RESIDENT"
    MOVE_OUT_RESIDENT = "MOVE_OUT_RESIDENT"
    DELETE_RESIDENT = "DELETE_RESIDENT"

    # ── Invites ───────────────────────────────────────────────────────
    CREATE_INVITE = "CREATE_INVITE"
    ACCEPT_INVITE = "ACCEPT_INVITE"
    DEACTIVATE_INVITE = "DEACTIVATE_INVITE"
    DELETE_INVITE = "DELETE_INVITE"

    # ── Organizations / Registry ──────────────────────────────────────
    CREATE_COMPANY = "CREATE_COMPANY"
    CREATE_CONDO = "CREATE_CONDO"
    DELETE_CONDO = "DELETE_CONDO"
    CREATE_UNIT = "CREATE_UNIT"
    DELETE_UNIT = "DELETE_UNIT"


def log_action(
    *,
    company_id: Optional[UUID],
    action: str,
    target_type: str,
    target_id: UUID,
    performed_by,
    target_label: str = "",
    context: Optional[dict] = None,
) -> Optional[AuditLog]:
    """
    Create an AuditLog entry for a critical action.

    Never raises. The insert runs in its own savepoint so a failure
    cannot poison a surrounding transaction.

    Args:
        company_id:    Company UUID for multi-tenant isolation (None for global actions).
        action:        Action constant from AuditAction (e.g. "CREATE_RESIDENT").
        target_type:   Human-readable type of the object acted on (e.g. "Invite").
        target_id:     Primary key of the object acted on.
        performed_by:  Django User instance, user id, or None.
        target_label:  Optional human-readable description of the object.
        context:       Optional dict of additional metadata to store as JSON.

    Returns:
        The created AuditLog instance, or None if creation failed.
    """
    performer = {}
    if performed_by is not None:
        key = 'performed_by' if hasattr(performed_by, 'pk') else 'performed_by_id'
        performer = {key: performed_by}

    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                company_id=company_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                target_label=target_label[:255],
                context=context or {},
                **performer,
            )
    except Exception:
        logger.exception(f"Failed to write audit log {action} for {target_type} {target_id}")
        return None
