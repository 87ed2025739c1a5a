"""
Invite Lifecycle Manager.

Invites are unit-scoped, expiring, usage-bounded tokens. Redemption
(accept_invite) locks the Invite row and creates the Resident in the same
transaction, so concurrent redemptions of one token serialize and the
max_uses bound holds.
"""
import logging
import re
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from apps.core.db import locked_atomic
from apps.core.exceptions import Conflict, InvalidInput, NotFound, Unexpected
from apps.governance.audit_service import AuditAction, log_action
from apps.registry.models import Resident, Unit
from apps.registry.resident_service import ResidentService
from .models import Invite, InviteRole
from .permissions import ADMIN_ROLES, Scope, ensure_access
from .signals import invite_accepted, invite_created

logger = logging.getLogger(__name__)

# URL-safe base64 alphabet; token_urlsafe(32) yields 43 chars
TOKEN_PATTERN = re.compile(r'^[A-Za-z0-9_-]{32,128}$')
TOKEN_BYTES = 32
TOKEN_ATTEMPTS = 10

INVALID_INVITE = "Invalid or expired invite"
INVITE_NOT_REDEEMABLE = "Invite is not valid or has been exhausted"

# Marks "use settings.INVITE_DEFAULT_MAX_USES"; None itself means unlimited
DEFAULT_MAX_USES = object()


def is_well_formed_token(token) -> bool:
    return isinstance(token, str) and bool(TOKEN_PATTERN.match(token))


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


@dataclass(frozen=True)
class InviteValidation:
    valid: bool
    reason: Optional[str] = None
    unit_number: Optional[str] = None


@dataclass(frozen=True)
class InviteAcceptance:
    resident: Resident
    unit: Unit


@dataclass(frozen=True)
class InviteStats:
    total: int
    active: int
    expired: int
    exhausted: int
    total_uses: int


def _rejection_reason(invite: Optional[Invite], now) -> Optional[str]:
    """Internal reason an invite cannot be redeemed, or None if it can."""
    if invite is None:
        return 'not_found'
    if not invite.is_active:
        return 'inactive'
    if invite.expires_at <= now:
        return 'expired'
    if invite.is_exhausted:
        return 'exhausted'
    return None


class InviteService:

    @staticmethod
    def create_invite(
        unit_id: UUID,
        *,
        created_by,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        role: str = InviteRole.TENANT,
        ttl_days: Optional[int] = None,
        max_uses: Optional[int] = DEFAULT_MAX_USES,
    ) -> Invite:
        """
        Issue a new invite for a unit.

        The caller must hold an administrative role over the unit's condo.
        max_uses=None means unlimited redemptions.

        Raises:
            InvalidInput: missing contact, ttl or max_uses out of range, unknown role
            NotFound: unit missing or deleted
            Forbidden: caller is not an admin over the condo
        """
        email = (email or '').strip() or None
        phone = (phone or '').strip() or None
        if not email and not phone:
            raise InvalidInput("Either email or phone is required")

        if role not in InviteRole.values:
            raise InvalidInput(f"Unknown invite role: {role}")

        ttl_days = settings.INVITE_DEFAULT_TTL_DAYS if ttl_days is None else ttl_days
        if max_uses is DEFAULT_MAX_USES:
            max_uses = settings.INVITE_DEFAULT_MAX_USES
        if not 1 <= ttl_days <= settings.INVITE_MAX_TTL_DAYS:
            raise InvalidInput(f"ttl_days must be between 1 and {settings.INVITE_MAX_TTL_DAYS}")

        if max_uses is not None and not 1 <= max_uses <= settings.INVITE_MAX_USES_LIMIT:
            raise InvalidInput(f"max_uses must be between 1 and {settings.INVITE_MAX_USES_LIMIT}")

        unit = (
            Unit.objects
            .filter(id=unit_id, deleted_at__isnull=True, condo__deleted_at__isnull=True)
            .select_related('condo')
            .first()
        )
        if unit is None:
            raise NotFound("Unit")

        creator_id = getattr(created_by, 'pk', created_by)
        ensure_access(creator_id, Scope.condo(unit.condo_id), ADMIN_ROLES, "Only condo administrators can create invites")

        expires_at = timezone.now() + timedelta(days=ttl_days)

        with transaction.atomic():
            invite = None
            for attempt in range(TOKEN_ATTEMPTS):
                try:
                    with transaction.atomic():
                        invite = Invite.objects.create(
                            unit=unit,
                            email=email,
                            phone=phone,
                            role=role,
                            token=generate_token(),
                            expires_at=expires_at,
                            max_uses=max_uses,
                            created_by_id=creator_id,
                        )
                    break
                except IntegrityError:
                    logger.warning(f"Invite token collision (attempt {attempt + 1})")
            if invite is None:
                raise Unexpected("Could not generate a unique invite token")

            logger.info(f"Invite created: invite={invite.id} unit={unit.id} token={invite.token_prefix}...")
            log_action(
                company_id=unit.condo.company_id,
                action=AuditAction.CREATE_INVITE,
                target_type="Invite",
                target_id=invite.id,
                target_label=f"Unit {unit.number}",
                performed_by=creator_id,
                context={"role": role, "max_uses": max_uses, "ttl_days": ttl_days},
            )
            transaction.on_commit(
                lambda: invite_created.send_robust(sender=InviteService, invite=invite)
            )
        return invite

    @staticmethod
    def validate_invite(token: str) -> InviteValidation:
        """
        Public, read-only check of a token.

        Every failure returns the same reason so callers cannot tell an
        unknown token from an expired or exhausted one. Malformed tokens
        never reach the database.
        """
        if not is_well_formed_token(token):
            logger.info("Invite validation rejected: malformed token")
            return InviteValidation(valid=False, reason=INVALID_INVITE)

        invite = (
            Invite.objects
            .filter(token=token, deleted_at__isnull=True, unit__deleted_at__isnull=True)
            .select_related('unit')
            .first()
        )
        reason = _rejection_reason(invite, timezone.now())
        if reason is not None:
            logger.info(f"Invite validation rejected ({reason}): token={token[:8]}...")
            return InviteValidation(valid=False, reason=INVALID_INVITE)

        return InviteValidation(valid=True, unit_number=invite.unit.number)

    @staticmethod
    def accept_invite(token: str, user_id: UUID) -> InviteAcceptance:
        """
        Redeem an invite for user_id in one transaction:
        lock invite, re-validate, create the (non-owner) residency,
        bump used_count and deactivate once max_uses is reached.

        Raises:
            InvalidInput: malformed token
            NotFound: unknown token
            Conflict: invite inactive/expired/exhausted, or user already resident
        """
        if not is_well_formed_token(token):
            raise InvalidInput("Malformed invite token")

        with locked_atomic():
            invite = (
                Invite.objects.select_for_update()
                .filter(token=token, deleted_at__isnull=True)
                .first()
            )
            if invite is None:
                raise NotFound("Invite")

            reason = _rejection_reason(invite, timezone.now())
            if reason is not None:
                logger.info(f"Invite acceptance rejected ({reason}): token={invite.token_prefix}...")
                raise Conflict(INVITE_NOT_REDEEMABLE)

            resident = ResidentService.create_resident(
                user_id=user_id,
                unit_id=invite.unit_id,
                is_owner=False,
            )

            invite.used_count += 1
            update_fields = ['used_count', 'updated_at']
            if invite.is_exhausted:
                invite.is_active = False
                update_fields.append('is_active')
                logger.info(f"Invite exhausted and deactivated: invite={invite.id}")
            invite.save(update_fields=update_fields)

            unit = resident.unit
            logger.info(f"Invite accepted: invite={invite.id} user={user_id} resident={resident.id}")
            log_action(
                company_id=unit.condo.company_id,
                action=AuditAction.ACCEPT_INVITE,
                target_type="Invite",
                target_id=invite.id,
                target_label=f"Unit {unit.number}",
                performed_by=user_id,
                context={"resident_id": str(resident.id), "used_count": invite.used_count},
            )
            transaction.on_commit(
                lambda: invite_accepted.send_robust(
                    sender=InviteService, invite=invite, resident=resident, user_id=user_id
                )
            )
            return InviteAcceptance(resident=resident, unit=unit)

    @staticmethod
    def _get_for_update(invite_id: UUID, include_deleted: bool = False) -> Invite:
        queryset = Invite.objects.select_for_update().filter(id=invite_id)
        if not include_deleted:
            queryset = queryset.filter(deleted_at__isnull=True)
        invite = queryset.select_related('unit__condo').first()
        if invite is None:
            raise NotFound("Invite")
        return invite

    @staticmethod
    def deactivate_invite(invite_id: UUID, performed_by) -> Invite:
        """Stop further redemptions. Deactivating an inactive invite is a no-op."""
        with locked_atomic():
            invite = InviteService._get_for_update(invite_id)
            ensure_access(getattr(performed_by, 'pk', performed_by), Scope.unit(invite.unit_id), ADMIN_ROLES)

            if not invite.is_active:
                return invite

            invite.is_active = False
            invite.save(update_fields=['is_active', 'updated_at'])

            logger.info(f"Invite deactivated: invite={invite_id}")
            log_action(
                company_id=invite.unit.condo.company_id,
                action=AuditAction.DEACTIVATE_INVITE,
                target_type="Invite",
                target_id=invite.id,
                target_label=f"Unit {invite.unit.number}",
                performed_by=performed_by,
            )
            return invite

    @staticmethod
    def delete_invite(invite_id: UUID, performed_by) -> None:
        """Soft delete. Deleting an already deleted invite is a no-op."""
        with locked_atomic():
            invite = InviteService._get_for_update(invite_id, include_deleted=True)
            ensure_access(getattr(performed_by, 'pk', performed_by), Scope.unit(invite.unit_id), ADMIN_ROLES)

            if invite.deleted_at is not None:
                return

            invite.deleted_at = timezone.now()
            invite.is_active = False
            invite.save(update_fields=['deleted_at', 'is_active', 'updated_at'])

            logger.info(f"Invite deleted: invite={invite_id}")
            log_action(
                company_id=invite.unit.condo.company_id,
                action=AuditAction.DELETE_INVITE,
                target_type="Invite",
                target_id=invite.id,
                target_label=f"Unit {invite.unit.number}",
                performed_by=performed_by,
            )

    @staticmethod
    def get_invite(invite_id: UUID) -> Optional[Invite]:
        return Invite.objects.filter(id=invite_id, deleted_at__isnull=True).select_related('unit').first()

    @staticmethod
    def get_invite_preview(invite_id: UUID) -> Optional[dict]:
        """Just enough of an invite to run an access check."""
        return (
            Invite.objects
            .filter(id=invite_id, deleted_at__isnull=True)
            .values('id', 'unit_id')
            .first()
        )

    @staticmethod
    def list_invites_by_unit(unit_id: UUID, include_expired: bool = False) -> List[Invite]:
        queryset = Invite.objects.filter(unit_id=unit_id, deleted_at__isnull=True)
        if not include_expired:
            queryset = queryset.filter(expires_at__gt=timezone.now())
        return list(queryset.order_by('-created_at'))

    @staticmethod
    def get_invite_stats(unit_id: UUID) -> InviteStats:
        now = timezone.now()
        row = Invite.objects.filter(unit_id=unit_id, deleted_at__isnull=True).aggregate(
            total=Count('id'),
            active=Count('id', filter=Q(is_active=True, expires_at__gt=now)),
            expired=Count('id', filter=Q(expires_at__lte=now)),
            exhausted=Count('id', filter=Q(max_uses__isnull=False, used_count__gte=F('max_uses'))),
            total_uses=Sum('used_count'),
        )
        return InviteStats(
            total=row['total'],
            active=row['active'],
            expired=row['expired'],
            exhausted=row['exhausted'],
            total_uses=row['total_uses'] or 0,
        )

    @staticmethod
    def expire_invites() -> int:
        """Deactivate every live invite past its expiry. Returns the count."""
        now = timezone.now()
        count = Invite.objects.filter(
            is_active=True,
            deleted_at__isnull=True,
            expires_at__lte=now,
        ).update(is_active=False, updated_at=now)
        if count:
            logger.info(f"Expired {count} invites")
        return count
