"""
Resident Lifecycle Manager.

Creates, updates and retires Resident rows while keeping two invariants:
- at most one active residency per (user, unit)
- at most one active owner per unit

and keeps the user's condo-scoped "resident" role in step with residency.

All mutations run in one locked transaction (see apps.core.db.locked_atomic).
Lock order is Unit -> Resident rows -> resident UserRole, matching
InviteService.accept_invite which takes the Invite lock first.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.db import locked_atomic
from apps.core.exceptions import Conflict, Forbidden, InvalidInput, NotFound
from apps.governance.audit_service import AuditAction, log_action
from apps.identity.models import Role, User, UserRole
from apps.identity.permissions import has_company_role
from .models import Resident, Unit
from .signals import resident_added

logger = logging.getLogger(__name__)

ALREADY_RESIDENT = "User is already an active resident of this unit"
ALREADY_OWNED = "Unit already has an owner. Remove existing owner first."
OWNER_ASSIGNMENT_FORBIDDEN = "Only company admins can assign owners"

OWNER_CONSTRAINT = 'residents_unit_active_owner_unique'


@dataclass(frozen=True)
class ResidentPage:
    items: List[Resident]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


def validate_residency_date(value: Optional[datetime], field_name: str) -> Optional[datetime]:
    """Move-in/move-out dates must be in the past and after the historical floor."""
    if value is None:
        return None
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    if value > timezone.now():
        raise InvalidInput(f"{field_name} cannot be in the future")
    floor_date = date.fromisoformat(settings.RESIDENCY_MIN_DATE)
    floor = timezone.make_aware(datetime.combine(floor_date, time.min))
    if value < floor:
        raise InvalidInput(f"{field_name} must be after {floor_date.isoformat()}")
    return value


def validate_residency_period(moved_in_at: Optional[datetime], moved_out_at: Optional[datetime]):
    if moved_in_at and moved_out_at and moved_in_at >= moved_out_at:
        raise InvalidInput("moved_out_at must be after moved_in_at")


def _conflict_from(error: IntegrityError, unit_id, is_owner: bool, exclude_id=None) -> Conflict:
    """
    Map a unique violation on Resident to the matching Conflict.

    PostgreSQL names the violated constraint; other backends only report
    columns, so the owner slot is re-read instead.
    """
    diag = getattr(error.__cause__, 'diag', None)
    constraint = getattr(diag, 'constraint_name', None)
    if constraint:
        return Conflict(ALREADY_OWNED if constraint == OWNER_CONSTRAINT else ALREADY_RESIDENT)

    if is_owner:
        owners = Resident.objects.active().filter(unit_id=unit_id, is_owner=True)
        if exclude_id is not None:
            owners = owners.exclude(id=exclude_id)
        if owners.exists():
            return Conflict(ALREADY_OWNED)
    return Conflict(ALREADY_RESIDENT)


class ResidentService:

    # -------------------------------------------------------------------------
    # Role sync
    # -------------------------------------------------------------------------

    @staticmethod
    def _lock_resident_role(user_id, condo_id) -> Optional[UserRole]:
        return (
            UserRole.objects.select_for_update()
            .filter(user_id=user_id, condo_id=condo_id, role=Role.RESIDENT, deleted_at__isnull=True)
            .first()
        )

    @staticmethod
    def _ensure_resident_role(user_id, condo_id):
        """Insert or reactivate the condo-scoped resident grant."""
        role = ResidentService._lock_resident_role(user_id, condo_id)

        if role is None:
            try:
                with transaction.atomic():
                    UserRole.objects.create(user_id=user_id, role=Role.RESIDENT, condo_id=condo_id)
                return
            except IntegrityError:
                # Concurrent insert won; fall through to reactivation
                logger.info(f"Resident role for user {user_id} in condo {condo_id} created concurrently")

            UserRole.objects.filter(
                user_id=user_id, condo_id=condo_id, role=Role.RESIDENT, deleted_at__isnull=True
            ).update(is_active=True, updated_at=timezone.now())
        elif not role.is_active:
            role.is_active = True
            role.save(update_fields=['is_active', 'updated_at'])

    @staticmethod
    def _sync_resident_role(user_id, condo_id):
        """Deactivate the resident grant once no active residency ties the user to the condo."""
        ResidentService._lock_resident_role(user_id, condo_id)

        still_resident = Resident.objects.active().filter(user_id=user_id, unit__condo_id=condo_id).exists()
        if still_resident:
            return

        UserRole.objects.filter(
            user_id=user_id, condo_id=condo_id, role=Role.RESIDENT, deleted_at__isnull=True
        ).update(is_active=False, updated_at=timezone.now())
        logger.info(f"Resident role deactivated (no active residences): user={user_id} condo={condo_id}")

    @staticmethod
    def _ensure_owner_slot_free(unit_id, exclude_id=None):
        owners = Resident.objects.select_for_update().active().filter(unit_id=unit_id, is_owner=True)
        if exclude_id is not None:
            owners = owners.exclude(id=exclude_id)
        if owners.exists():
            raise Conflict(ALREADY_OWNED)

    @staticmethod
    def _check_owner_permission(performed_by, company_id):
        if performed_by is not None and not has_company_role(getattr(performed_by, 'pk', performed_by), company_id):
            raise Forbidden(OWNER_ASSIGNMENT_FORBIDDEN)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    @staticmethod
    def create_resident(
        user_id: UUID,
        unit_id: UUID,
        is_owner: bool = False,
        moved_in_at: Optional[datetime] = None,
        performed_by=None,
    ) -> Resident:
        """
        Create a residency in one transaction.

        performed_by is the acting admin (None for system flows such as
        invite acceptance). Only company-level admins may create owners.

        Raises:
            NotFound: user or unit missing
            Forbidden: owner assignment by a non company-level admin
            Conflict: already an active resident / unit already owned
            InvalidInput: bad moved_in_at
        """
        moved_in_at = validate_residency_date(moved_in_at, 'moved_in_at') or timezone.now()

        with locked_atomic():
            if not User.objects.filter(id=user_id, is_active=True).exists():
                raise NotFound("User")

            unit = (
                Unit.objects.select_for_update()
                .filter(id=unit_id, deleted_at__isnull=True)
                .select_related('condo')
                .first()
            )
            if unit is None:
                raise NotFound("Unit")

            existing = Resident.objects.select_for_update().active().filter(user_id=user_id, unit_id=unit_id)
            if existing.exists():
                raise Conflict(ALREADY_RESIDENT)

            if is_owner:
                ResidentService._check_owner_permission(performed_by, unit.condo.company_id)
                ResidentService._ensure_owner_slot_free(unit_id)

            try:
                with transaction.atomic():
                    resident = Resident.objects.create(
                        user_id=user_id,
                        unit=unit,
                        is_owner=is_owner,
                        moved_in_at=moved_in_at,
                    )
            except IntegrityError as e:
                raise _conflict_from(e, unit_id, is_owner)

            ResidentService._ensure_resident_role(user_id, unit.condo_id)

            logger.info(f"Resident created: resident={resident.id} unit={unit_id} condo={unit.condo_id}")
            log_action(
                company_id=unit.condo.company_id,
                action=AuditAction.CREATE_RESIDENT,
                target_type="Resident",
                target_id=resident.id,
                target_label=f"Unit {unit.number}",
                performed_by=performed_by,
                context={"unit_id": str(unit_id), "user_id": str(user_id), "is_owner": is_owner},
            )
            transaction.on_commit(
                lambda: resident_added.send_robust(sender=ResidentService, resident=resident)
            )
            return resident

    @staticmethod
    def move_out_resident(resident_id: UUID, performed_by=None) -> Resident:
        """
        Retire a residency (is_active=False, moved_out_at=now) and drop the
        resident role when no other active residency in the same condo remains.
        Moving out an already inactive residency is a no-op.
        """
        with locked_atomic():
            resident = (
                Resident.objects.select_for_update()
                .filter(id=resident_id, deleted_at__isnull=True)
                .select_related('unit__condo')
                .first()
            )
            if resident is None:
                raise NotFound("Resident")

            if not resident.is_active:
                return resident

            resident.is_active = False
            resident.moved_out_at = timezone.now()
            resident.save(update_fields=['is_active', 'moved_out_at', 'updated_at'])

            ResidentService._sync_resident_role(resident.user_id, resident.unit.condo_id)

            logger.info(f"Resident moved out: resident={resident_id}")
            log_action(
                company_id=resident.unit.condo.company_id,
                action=AuditAction.MOVE_OUT_RESIDENT,
                target_type="Resident",
                target_id=resident.id,
                target_label=f"Unit {resident.unit.number}",
                performed_by=performed_by,
            )
            return resident

    @staticmethod
    def update_resident(
        resident_id: UUID,
        *,
        is_owner: Optional[bool] = None,
        is_active: Optional[bool] = None,
        moved_in_at: Optional[datetime] = None,
        moved_out_at: Optional[datetime] = None,
        performed_by=None,
    ) -> Resident:
        """
        Apply partial changes under the same rules as creation:
        ownership changes are company-admin only and keep one owner per unit,
        reactivation keeps one residency per (user, unit), and
        moved_in_at < moved_out_at when both are known. moved_out_at only
        applies to a residency that is (or becomes) inactive.
        """
        if all(v is None for v in (is_owner, is_active, moved_in_at, moved_out_at)):
            raise InvalidInput("No fields to update")

        moved_in_at = validate_residency_date(moved_in_at, 'moved_in_at')
        moved_out_at = validate_residency_date(moved_out_at, 'moved_out_at')

        with locked_atomic():
            resident = (
                Resident.objects.select_for_update()
                .filter(id=resident_id, deleted_at__isnull=True)
                .select_related('unit__condo')
                .first()
            )
            if resident is None:
                raise NotFound("Resident")

            unit = resident.unit
            changed = []

            reactivating = is_active is True and not resident.is_active
            deactivating = is_active is False and resident.is_active
            stays_active = resident.is_active and not deactivating

            if moved_out_at is not None and (reactivating or stays_active):
                raise InvalidInput("moved_out_at cannot be set on an active residency")

            if reactivating:
                effective_moved_out_at = None
            elif deactivating:
                effective_moved_out_at = moved_out_at or timezone.now()
            else:
                effective_moved_out_at = moved_out_at or resident.moved_out_at

            validate_residency_period(moved_in_at or resident.moved_in_at, effective_moved_out_at)

            if is_owner is not None and is_owner != resident.is_owner:
                ResidentService._check_owner_permission(performed_by, unit.condo.company_id)
                resident.is_owner = is_owner
                changed.append('is_owner')

            if reactivating:
                clash = (
                    Resident.objects.select_for_update().active()
                    .filter(user_id=resident.user_id, unit_id=resident.unit_id)
                    .exclude(id=resident.id)
                )
                if clash.exists():
                    raise Conflict(ALREADY_RESIDENT)
                resident.is_active = True
                changed.append('is_active')
            elif deactivating:
                resident.is_active = False
                changed.append('is_active')

            if resident.is_owner and resident.is_active and ('is_owner' in changed or reactivating):
                ResidentService._ensure_owner_slot_free(resident.unit_id, exclude_id=resident.id)

            if moved_in_at is not None:
                resident.moved_in_at = moved_in_at
                changed.append('moved_in_at')
            if effective_moved_out_at != resident.moved_out_at:
                resident.moved_out_at = effective_moved_out_at
                changed.append('moved_out_at')

            try:
                with transaction.atomic():
                    resident.save(update_fields=sorted(set(changed)) + ['updated_at'])
            except IntegrityError as e:
                raise _conflict_from(e, resident.unit_id, resident.is_owner, exclude_id=resident.id)

            if reactivating:
                ResidentService._ensure_resident_role(resident.user_id, unit.condo_id)
            elif deactivating:
                ResidentService._sync_resident_role(resident.user_id, unit.condo_id)

            logger.info(f"Resident updated: resident={resident_id} fields={sorted(set(changed))}")
            log_action(
                company_id=unit.condo.company_id,
                action=AuditAction.UPDATE_RESIDENT,
                target_type="Resident",
                target_id=resident.id,
                target_label=f"Unit {unit.number}",
                performed_by=performed_by,
                context={"fields": sorted(set(changed))},
            )
            return resident

    @staticmethod
    def delete_resident(resident_id: UUID, performed_by=None) -> None:
        """Soft delete; the resident role is re-synced like a move-out."""
        with locked_atomic():
            resident = (
                Resident.objects.select_for_update()
                .filter(id=resident_id, deleted_at__isnull=True)
                .select_related('unit__condo')
                .first()
            )
            if resident is None:
                raise NotFound("Resident")

            now = timezone.now()
            was_active = resident.is_active
            resident.deleted_at = now
            resident.is_active = False
            if was_active:
                resident.moved_out_at = now
            resident.save(update_fields=['deleted_at', 'is_active', 'moved_out_at', 'updated_at'])

            if was_active:
                ResidentService._sync_resident_role(resident.user_id, resident.unit.condo_id)

            logger.info(f"Resident deleted: resident={resident_id}")
            log_action(
                company_id=resident.unit.condo.company_id,
                action=AuditAction.DELETE_RESIDENT,
                target_type="Resident",
                target_id=resident.id,
                target_label=f"Unit {resident.unit.number}",
                performed_by=performed_by,
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @staticmethod
    def get_resident(resident_id: UUID) -> Optional[Resident]:
        return (
            Resident.objects.alive()
            .filter(id=resident_id)
            .select_related('user', 'unit__condo')
            .first()
        )

    @staticmethod
    def get_unit_owner(unit_id: UUID) -> Optional[Resident]:
        return Resident.objects.active().filter(unit_id=unit_id, is_owner=True).select_related('user').first()

    @staticmethod
    def list_residents_by_unit(
        unit_id: UUID,
        page: int = 1,
        limit: int = 20,
        include_inactive: bool = False,
    ) -> ResidentPage:
        page = max(1, page)
        limit = min(max(1, limit), 100)

        queryset = Resident.objects.alive().filter(unit_id=unit_id)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        total = queryset.count()
        offset = (page - 1) * limit
        items = list(
            queryset.select_related('user', 'unit__condo')
            .order_by('-is_owner', 'created_at')[offset:offset + limit]
        )
        return ResidentPage(items=items, total=total, page=page, limit=limit)

    @staticmethod
    def list_units_by_user(user_id: UUID, include_inactive: bool = False) -> List[Resident]:
        """Residencies of a user, with unit and condo loaded."""
        queryset = Resident.objects.alive().filter(user_id=user_id)
        if not include_inactive:
            queryset = queryset.filter(is_active=True)
        return list(
            queryset.select_related('unit__condo')
            .order_by('unit__condo__name', 'unit__number')
        )
