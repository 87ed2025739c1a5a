"""
Access Evaluator - the single place that decides whether a user may act
on a company, condo, unit or invite.

Scope hierarchy: Company ⊃ Condo ⊃ Unit.
- A global superadmin grant passes every check.
- Company-scoped grants satisfy checks on the company and on every condo
  and unit beneath it.
- Condo-scoped grants satisfy checks on that condo and its units only.
- Unit checks additionally pass for an active resident of that exact unit.

Every call reads the Role Store afresh; nothing is cached between calls.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union
from uuid import UUID

from apps.core.exceptions import Forbidden, InvalidInput, NotFound
from apps.organizations.models import Company, Condo
from apps.registry.models import Resident, Unit
from .models import Invite, Role, UserRole

logger = logging.getLogger(__name__)


# Legacy role names still found in older tokens and clients
ROLE_ALIASES = {
    'super_admin': Role.SUPERADMIN,
    'uk_director': Role.COMPANY_ADMIN,
    'complex_admin': Role.CONDO_ADMIN,
}

ADMIN_ROLES = (Role.COMPANY_ADMIN, Role.CONDO_ADMIN)
MANAGEMENT_ROLES = ADMIN_ROLES + (Role.ACCOUNTANT,)
STAFF_ROLES = (Role.EMPLOYEE, Role.SECURITY_GUARD)


def normalize_role(value: Union[str, Role]) -> Role:
    """Map a role name (or legacy alias) to Role. Unknown names are malformed input."""
    if isinstance(value, Role):
        return value
    key = str(value).strip().lower()
    if key in ROLE_ALIASES:
        return ROLE_ALIASES[key]
    try:
        return Role(key)
    except ValueError:
        raise InvalidInput(f"Unknown role: {value}")


def normalize_roles(values: Optional[Iterable[Union[str, Role]]]) -> Optional[FrozenSet[str]]:
    if values is None:
        return None
    return frozenset(normalize_role(v).value for v in values)


# =============================================================================
# Scopes
# =============================================================================

class ScopeKind(str, Enum):
    COMPANY = 'company'
    CONDO = 'condo'
    UNIT = 'unit'


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    id: UUID

    @classmethod
    def company(cls, company_id) -> "Scope":
        return cls(ScopeKind.COMPANY, _as_uuid(company_id))

    @classmethod
    def condo(cls, condo_id) -> "Scope":
        return cls(ScopeKind.CONDO, _as_uuid(condo_id))

    @classmethod
    def unit(cls, unit_id) -> "Scope":
        return cls(ScopeKind.UNIT, _as_uuid(unit_id))

    @classmethod
    def parse(cls, value: str) -> "Scope":
        """Parse "kind:uuid", e.g. "unit:6f1c...". """
        kind, sep, raw_id = (value or '').partition(':')
        if not sep:
            raise InvalidInput(f"Malformed scope: {value}")
        try:
            return cls(ScopeKind(kind.strip().lower()), _as_uuid(raw_id.strip()))
        except ValueError:
            raise InvalidInput(f"Malformed scope: {value}")

    def __str__(self):
        return f"{self.kind.value}:{self.id}"


def _as_uuid(value) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidInput(f"Malformed id: {value}")


@dataclass(frozen=True)
class ScopeChain:
    """Ownership chain of a target, resolved up to its Company."""
    company_id: UUID
    condo_id: Optional[UUID] = None
    unit_id: Optional[UUID] = None


def resolve_scope_chain(scope: Scope) -> ScopeChain:
    """
    Resolve unit -> condo -> company. Missing or soft-deleted targets
    (or ancestors) raise NotFound.
    """
    if scope.kind == ScopeKind.UNIT:
        row = (
            Unit.objects
            .filter(
                id=scope.id,
                deleted_at__isnull=True,
                condo__deleted_at__isnull=True,
                condo__company__deleted_at__isnull=True,
            )
            .values('condo_id', 'condo__company_id')
            .first()
        )
        if row is None:
            raise NotFound("Unit")
        return ScopeChain(company_id=row['condo__company_id'], condo_id=row['condo_id'], unit_id=scope.id)

    if scope.kind == ScopeKind.CONDO:
        company_id = (
            Condo.objects
            .filter(id=scope.id, deleted_at__isnull=True, company__deleted_at__isnull=True)
            .values_list('company_id', flat=True)
            .first()
        )
        if company_id is None:
            raise NotFound("Condo")
        return ScopeChain(company_id=company_id, condo_id=scope.id)

    if not Company.objects.filter(id=scope.id, deleted_at__isnull=True).exists():
        raise NotFound("Company")
    return ScopeChain(company_id=scope.id)


# =============================================================================
# Evaluation
# =============================================================================

def _active_grants(user_id):
    return list(
        UserRole.objects.active()
        .filter(user_id=user_id)
        .values_list('role', 'company_id', 'condo_id')
    )


def _is_superadmin(grants) -> bool:
    return any(
        role == Role.SUPERADMIN and company_id is None and condo_id is None
        for role, company_id, condo_id in grants
    )


def is_superadmin(user_id) -> bool:
    return _is_superadmin(_active_grants(user_id))


def can_access(user_id, scope: Scope, required_roles: Optional[Iterable[Union[str, Role]]] = None) -> bool:
    """
    Decide whether user_id may act on scope.

    Args:
        user_id: The caller.
        scope: Target (Scope.company / Scope.condo / Scope.unit).
        required_roles: Roles that qualify. None means any role held at or
            above the target (resident grants never widen unit access).
            Residents of the unit pass when required_roles is None or
            includes "resident".

    Returns:
        True to grant, False to deny. Never raises for an ordinary miss;
        raises NotFound for a missing target and InvalidInput for unknown
        role names.
    """
    roles = normalize_roles(required_roles)
    if user_id is None:
        return False

    grants = _active_grants(user_id)
    if _is_superadmin(grants):
        return True

    chain = resolve_scope_chain(scope)

    for role, company_id, condo_id in grants:
        if roles is not None and role not in roles:
            continue
        if role == Role.RESIDENT and chain.unit_id is not None:
            # Residents reach units through their Resident rows only
            continue

        if company_id is None and condo_id is None:
            return True
        if company_id is not None and company_id == chain.company_id:
            return True
        if condo_id is not None and chain.condo_id is not None and condo_id == chain.condo_id:
            return True

    # Self-access never satisfies an administrative requirement
    if chain.unit_id is not None and (roles is None or Role.RESIDENT.value in roles):
        if Resident.objects.active().filter(user_id=user_id, unit_id=chain.unit_id).exists():
            return True

    logger.warning(f"Access denied: user={user_id} scope={scope} roles={sorted(roles) if roles else 'any'}")
    return False


def ensure_access(user_id, scope: Scope, required_roles=None, message: str = "Insufficient permissions"):
    """can_access() that raises Forbidden on denial."""
    if not can_access(user_id, scope, required_roles):
        raise Forbidden(message)


def has_company_role(user_id, company_id, required_roles=ADMIN_ROLES) -> bool:
    """
    True only for grants held at the company level (or superadmin).
    Condo-level grants do not count. Used for ownership assignment.
    """
    roles = normalize_roles(required_roles)
    grants = _active_grants(user_id)
    if _is_superadmin(grants):
        return True
    return any(
        grant_company_id == company_id and (roles is None or role in roles)
        for role, grant_company_id, _ in grants
    )


def can_access_invite(user_id, invite_id, required_roles=ADMIN_ROLES) -> bool:
    """Resolve the invite to its unit and evaluate unit access."""
    unit_id = (
        Invite.objects
        .filter(id=invite_id, deleted_at__isnull=True)
        .values_list('unit_id', flat=True)
        .first()
    )
    if unit_id is None:
        raise NotFound("Invite")
    return can_access(user_id, Scope.unit(unit_id), required_roles)


def get_active_roles(user_id) -> list:
    """Active grants as plain dicts, e.g. for the /me endpoint and JWT claims."""
    return [
        {
            'role': role,
            'company_id': str(company_id) if company_id else None,
            'condo_id': str(condo_id) if condo_id else None,
        }
        for role, company_id, condo_id in _active_grants(user_id)
    ]
