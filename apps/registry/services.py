import logging
from typing import List, Optional
from uuid import UUID
from dataclasses import dataclass

from django.db import IntegrityError, transaction

from apps.core.exceptions import Conflict, Forbidden, NotFound
from apps.governance.audit_service import AuditAction, log_action
from apps.identity.permissions import ADMIN_ROLES, Scope, can_access
from .models import Resident, Unit
from .dtos import UnitIn, UnitUpdate

logger = logging.getLogger(__name__)

DUPLICATE_UNIT = "A unit with this number already exists in the condo"


@dataclass(frozen=True)
class UnitDTO:
    """Data Transfer Object for Unit - used for cross-app communication."""
    id: UUID
    condo_id: UUID
    company_id: UUID
    number: str
    floor: Optional[int]
    is_active: bool

    @property
    def full_label(self) -> str:
        return f"Unit {self.number}"


def get_unit_dto(unit_id: UUID) -> Optional[UnitDTO]:
    """
    Get a live Unit as a DTO for cross-app communication.
    """
    unit = (
        Unit.objects.alive()
        .filter(id=unit_id)
        .select_related('condo')
        .first()
    )
    if unit is None:
        return None
    return UnitDTO(
        id=unit.id,
        condo_id=unit.condo_id,
        company_id=unit.condo.company_id,
        number=unit.number,
        floor=unit.floor,
        is_active=unit.is_active,
    )


def get_unit(unit_id: UUID) -> Optional[Unit]:
    return Unit.objects.alive().filter(id=unit_id, condo__deleted_at__isnull=True).first()


def list_units(condo_id: UUID, search: str = None) -> List[Unit]:
    queryset = Unit.objects.alive().filter(condo_id=condo_id)
    if search:
        queryset = queryset.filter(number__icontains=search)
    return list(queryset.order_by('number'))


def _ensure_condo_admin(performed_by, condo_id):
    if not can_access(getattr(performed_by, 'pk', performed_by), Scope.condo(condo_id), ADMIN_ROLES):
        raise Forbidden("Only condo administrators can manage units")


def create_unit(condo_id: UUID, payload: UnitIn, performed_by) -> Unit:
    from apps.organizations.services import get_condo

    condo = get_condo(condo_id)
    if condo is None:
        raise NotFound("Condo")
    _ensure_condo_admin(performed_by, condo_id)

    with transaction.atomic():
        try:
            with transaction.atomic():
                unit = Unit.objects.create(condo=condo, **payload.dict())
        except IntegrityError:
            raise Conflict(DUPLICATE_UNIT)

        log_action(
            company_id=condo.company_id,
            action=AuditAction.CREATE_UNIT,
            target_type="Unit",
            target_id=unit.id,
            target_label=f"Unit {unit.number}",
            performed_by=performed_by,
        )
    return unit


def update_unit(unit_id: UUID, payload: UnitUpdate, performed_by) -> Unit:
    unit = get_unit(unit_id)
    if unit is None:
        raise NotFound("Unit")
    _ensure_condo_admin(performed_by, unit.condo_id)

    for key, value in payload.dict(exclude_unset=True).items():
        if value is not None:
            setattr(unit, key, value)
    try:
        with transaction.atomic():
            unit.save()
    except IntegrityError:
        raise Conflict(DUPLICATE_UNIT)
    return unit


def soft_delete_unit(unit_id: UUID, performed_by) -> None:
    """Units with active residents cannot be deleted; move them out first."""
    unit = Unit.objects.alive().filter(id=unit_id).select_related('condo').first()
    if unit is None:
        raise NotFound("Unit")
    _ensure_condo_admin(performed_by, unit.condo_id)

    with transaction.atomic():
        if Resident.objects.active().filter(unit_id=unit_id).exists():
            raise Conflict("Unit still has active residents")
        unit.soft_delete()

        logger.info(f"Unit deleted: unit={unit_id}")
        log_action(
            company_id=unit.condo.company_id,
            action=AuditAction.DELETE_UNIT,
            target_type="Unit",
            target_id=unit.id,
            target_label=f"Unit {unit.number}",
            performed_by=performed_by,
        )
