from datetime import date
from typing import List, Optional
from uuid import UUID
from ninja import Router

from apps.core.exceptions import Forbidden, NotFound
from apps.identity.api import require_auth
from apps.identity.decorators import scoped_access
from apps.identity.permissions import MANAGEMENT_ROLES, Scope, ensure_access, is_superadmin
from .models import AuditLog
from .dtos import AuditLogOut

router = Router(tags=["Governance"])


def _serialize_log(log: AuditLog) -> AuditLogOut:
    """Convert an AuditLog model instance to its output schema."""
    performed_by_name = None
    if log.performed_by_id:
        performed_by_name = log.performed_by.get_full_name() or log.performed_by.email or log.performed_by.username

    return AuditLogOut(
        id=log.id,
        company_id=log.company_id,
        action=log.action,
        target_type=log.target_type,
        target_id=log.target_id,
        target_label=log.target_label,
        performed_by_name=performed_by_name,
        performed_at=log.performed_at,
        context=log.context,
    )


@router.get("/companies/{company_id}/audit-logs", response=List[AuditLogOut], auth=None)
@scoped_access('company', 'company_id', MANAGEMENT_ROLES)
def list_audit_logs(
    request,
    company_id: UUID,
    action: Optional[str] = None,
    target_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
):
    """
    List audit log entries for a company.
    Requires a management role at company level.
    Supports filtering by action name, target type, and date range.
    """
    qs = AuditLog.objects.filter(company_id=company_id).select_related("performed_by")

    if action:
        qs = qs.filter(action=action)
    if target_type:
        qs = qs.filter(target_type=target_type)
    if start_date:
        qs = qs.filter(performed_at__date__gte=start_date)
    if end_date:
        qs = qs.filter(performed_at__date__lte=end_date)

    qs = qs[:max(1, min(limit, 500))]  # cap at 500

    return [_serialize_log(log) for log in qs]


@router.get("/audit-logs/{log_id}", response=AuditLogOut, auth=None)
def get_audit_log(request, log_id: UUID):
    """
    Retrieve a single audit log entry by ID.
    Global entries (no company) are visible to superadmins only.
    """
    user = require_auth(request)

    log = AuditLog.objects.select_related("performed_by").filter(id=log_id).first()
    if log is None:
        raise NotFound("Audit log")

    if log.company_id is None:
        if not is_superadmin(user.id):
            raise Forbidden()
    else:
        ensure_access(user.id, Scope.company(log.company_id), MANAGEMENT_ROLES)

    return _serialize_log(log)
