"""Services for Identity app: users and the Role Store."""
import logging
from typing import List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from apps.governance.audit_service import AuditAction, log_action
from apps.organizations.models import Company, Condo
from .dtos import RoleGrantDTO, UserCreate, UserDTO
from .models import Role, User, UserRole
from .permissions import ADMIN_ROLES, Scope, can_access, has_company_role, is_superadmin, normalize_role

logger = logging.getLogger(__name__)


def _grant_dto(grant: UserRole) -> RoleGrantDTO:
    return RoleGrantDTO(
        id=grant.id,
        role=grant.role,
        scope_level=grant.scope_level,
        company_id=grant.company_id,
        condo_id=grant.condo_id,
        is_active=grant.is_active,
    )


def get_user_dto(user_id) -> UserDTO | None:
    try:
        user = User.objects.get(id=user_id)
    except User.DoesNotExist:
        return None
    return UserDTO(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        is_active=user.is_active,
        roles=list_user_roles(user.id),
    )


def create_user(payload: UserCreate) -> UserDTO:
    if User.objects.filter(username=payload.username).exists():
        raise Conflict("Username is already taken")
    user = User.objects.create_user(
        username=payload.username,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone or "",
        is_active=True
    )
    return get_user_dto(user.id)


# =============================================================================
# Role Store
# =============================================================================

def list_user_roles(user_id) -> List[RoleGrantDTO]:
    grants = UserRole.objects.active().filter(user_id=user_id).order_by('role', 'created_at')
    return [_grant_dto(g) for g in grants]


def _resolve_grant_company(company_id, condo_id) -> Optional[UUID]:
    """Company that owns a grant scope (None for global). Raises NotFound for dead scopes."""
    if condo_id is not None:
        company = Condo.objects.filter(id=condo_id, deleted_at__isnull=True).values_list('company_id', flat=True).first()
        if company is None:
            raise NotFound("Condo")
        return company
    if company_id is not None:
        if not Company.objects.filter(id=company_id, deleted_at__isnull=True).exists():
            raise NotFound("Company")
        return company_id
    return None


def _ensure_can_manage(actor_id, company_id, condo_id):
    """
    Global grants: superadmin only.
    Company grants: superadmin or a company admin of that company.
    Condo grants: any admin over the condo.
    """
    if actor_id is None:
        return
    if condo_id is not None:
        allowed = can_access(actor_id, Scope.condo(condo_id), ADMIN_ROLES)
    elif company_id is not None:
        allowed = has_company_role(actor_id, company_id, (Role.COMPANY_ADMIN,))
    else:
        allowed = is_superadmin(actor_id)
    if not allowed:
        raise Forbidden("Insufficient permissions to manage roles in this scope")


def grant_role(user_id, role, company_id=None, condo_id=None, granted_by=None) -> RoleGrantDTO:
    """
    Grant a scoped role. granted_by=None is a system grant (no authorization).
    Re-granting an existing inactive grant reactivates it.
    """
    role = normalize_role(role)
    if company_id is not None and condo_id is not None:
        raise InvalidInput("A role is scoped to a company or a condo, not both")
    if role == Role.SUPERADMIN and (company_id or condo_id):
        raise InvalidInput("superadmin is a global role")
    if role == Role.RESIDENT:
        raise InvalidInput("The resident role follows residency and cannot be granted directly")

    if not User.objects.filter(id=user_id, is_active=True).exists():
        raise NotFound("User")

    audit_company_id = _resolve_grant_company(company_id, condo_id)
    actor_id = getattr(granted_by, 'pk', granted_by)
    _ensure_can_manage(actor_id, company_id, condo_id)

    with transaction.atomic():
        grant = (
            UserRole.objects.select_for_update()
            .filter(user_id=user_id, role=role, company_id=company_id, condo_id=condo_id, deleted_at__isnull=True)
            .first()
        )
        if grant is not None:
            if grant.is_active:
                return _grant_dto(grant)
            grant.is_active = True
            grant.granted_by_id = actor_id
            grant.save(update_fields=['is_active', 'granted_by', 'updated_at'])
        else:
            try:
                with transaction.atomic():
                    grant = UserRole.objects.create(
                        user_id=user_id,
                        role=role,
                        company_id=company_id,
                        condo_id=condo_id,
                        granted_by_id=actor_id,
                    )
            except IntegrityError:
                raise Conflict("Role already granted")

        logger.info(f"Role granted: user={user_id} role={role.value} scope={grant.scope_level}")
        log_action(
            company_id=audit_company_id,
            action=AuditAction.GRANT_ROLE,
            target_type="UserRole",
            target_id=grant.id,
            target_label=f"{role.value} ({grant.scope_level})",
            performed_by=actor_id,
            context={"user_id": str(user_id)},
        )
    return _grant_dto(grant)


def revoke_role(role_id, revoked_by=None) -> None:
    """Soft delete a grant (is_active=False, deleted_at=now)."""
    with transaction.atomic():
        grant = UserRole.objects.select_for_update().filter(id=role_id, deleted_at__isnull=True).first()
        if grant is None:
            raise NotFound("Role")

        if grant.role == Role.RESIDENT:
            raise InvalidInput("The resident role follows residency and cannot be revoked directly")

        actor_id = getattr(revoked_by, 'pk', revoked_by)
        _ensure_can_manage(actor_id, grant.company_id, grant.condo_id)

        grant.is_active = False
        grant.deleted_at = timezone.now()
        grant.save(update_fields=['is_active', 'deleted_at', 'updated_at'])

        company_id = grant.company_id
        if company_id is None and grant.condo_id is not None:
            company_id = Condo.objects.filter(id=grant.condo_id).values_list('company_id', flat=True).first()

        logger.info(f"Role revoked: grant={role_id} user={grant.user_id} role={grant.role}")
        log_action(
            company_id=company_id,
            action=AuditAction.REVOKE_ROLE,
            target_type="UserRole",
            target_id=grant.id,
            target_label=f"{grant.role} ({grant.scope_level})",
            performed_by=actor_id,
            context={"user_id": str(grant.user_id)},
        )
