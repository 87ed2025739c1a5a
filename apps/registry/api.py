"""
Registry API endpoints with JWT authentication.

Units within condos, and the residents living in them.
"""
from typing import List, Optional
from uuid import UUID
from ninja import Router
from django.http import HttpRequest

from apps.core.exceptions import Forbidden, NotFound
from apps.identity.api import require_auth
from apps.identity.decorators import scoped_access
from apps.identity.permissions import ADMIN_ROLES, Scope, ensure_access, is_superadmin
from .dtos import (
    ResidenceOut,
    ResidentIn,
    ResidentOut,
    ResidentPageOut,
    ResidentUpdate,
    UnitIn,
    UnitOut,
    UnitUpdate,
)
from .resident_service import ResidentService
from .services import create_unit, get_unit, list_units, soft_delete_unit, update_unit

router = Router(tags=["Registry"])


# =============================================================================
# Units
# =============================================================================

@router.get("/condos/{condo_id}/units", response=List[UnitOut], auth=None)
@scoped_access('condo', 'condo_id')
def list_condo_units(request: HttpRequest, condo_id: UUID, search: Optional[str] = None):
    return list_units(condo_id, search=search)


@router.post("/condos/{condo_id}/units", response={201: UnitOut}, auth=None)
def create_condo_unit(request: HttpRequest, condo_id: UUID, payload: UnitIn):
    user = require_auth(request)
    return 201, create_unit(condo_id, payload, performed_by=user)


@router.get("/units/{unit_id}", response=UnitOut, auth=None)
@scoped_access('unit', 'unit_id')
def get_unit_detail(request: HttpRequest, unit_id: UUID):
    return get_unit(unit_id)


@router.patch("/units/{unit_id}", response=UnitOut, auth=None)
def update_unit_detail(request: HttpRequest, unit_id: UUID, payload: UnitUpdate):
    user = require_auth(request)
    return update_unit(unit_id, payload, performed_by=user)


@router.delete("/units/{unit_id}", response={204: None}, auth=None)
def delete_unit(request: HttpRequest, unit_id: UUID):
    user = require_auth(request)
    soft_delete_unit(unit_id, performed_by=user)
    return 204, None


# =============================================================================
# Residents
# =============================================================================

@router.get("/units/{unit_id}/residents", response=ResidentPageOut, auth=None)
@scoped_access('unit', 'unit_id')
def list_unit_residents(
    request: HttpRequest,
    unit_id: UUID,
    page: int = 1,
    limit: int = 20,
    include_inactive: bool = False,
):
    result = ResidentService.list_residents_by_unit(
        unit_id, page=page, limit=limit, include_inactive=include_inactive
    )
    return {
        'items': result.items,
        'total': result.total,
        'page': result.page,
        'limit': result.limit,
        'total_pages': result.total_pages,
    }


@router.get("/units/{unit_id}/owner", response={200: ResidentOut, 204: None}, auth=None)
@scoped_access('unit', 'unit_id')
def get_unit_owner(request: HttpRequest, unit_id: UUID):
    owner = ResidentService.get_unit_owner(unit_id)
    if owner is None:
        return 204, None
    return 200, owner


@router.post("/residents", response={201: ResidentOut}, auth=None)
def create_resident(request: HttpRequest, payload: ResidentIn):
    """
    Add a user to a unit. Condo administrators only; assigning an owner
    additionally needs a company-level admin role.
    """
    user = require_auth(request)
    unit = get_unit(payload.unit_id)
    if unit is None:
        raise NotFound("Unit")
    ensure_access(user.id, Scope.condo(unit.condo_id), ADMIN_ROLES)

    resident = ResidentService.create_resident(
        user_id=payload.user_id,
        unit_id=payload.unit_id,
        is_owner=payload.is_owner,
        moved_in_at=payload.moved_in_at,
        performed_by=user,
    )
    return 201, resident


@router.get("/residents/{resident_id}", response=ResidentOut, auth=None)
@scoped_access('resident', 'resident_id')
def get_resident(request: HttpRequest, resident_id: UUID):
    return ResidentService.get_resident(resident_id)


@router.patch("/residents/{resident_id}", response=ResidentOut, auth=None)
@scoped_access('resident', 'resident_id', ADMIN_ROLES)
def update_resident(request: HttpRequest, resident_id: UUID, payload: ResidentUpdate):
    return ResidentService.update_resident(
        resident_id,
        performed_by=request.user,
        **payload.dict(exclude_unset=True),
    )


@router.post("/residents/{resident_id}/move-out", response=ResidentOut, auth=None)
@scoped_access('resident', 'resident_id', ADMIN_ROLES)
def move_out_resident(request: HttpRequest, resident_id: UUID):
    return ResidentService.move_out_resident(resident_id, performed_by=request.user)


@router.delete("/residents/{resident_id}", response={204: None}, auth=None)
@scoped_access('resident', 'resident_id', ADMIN_ROLES)
def delete_resident(request: HttpRequest, resident_id: UUID):
    ResidentService.delete_resident(resident_id, performed_by=request.user)
    return 204, None


@router.get("/me/residences", response=List[ResidenceOut], auth=None)
def my_residences(request: HttpRequest, include_inactive: bool = False):
    user = require_auth(request)
    return ResidentService.list_units_by_user(user.id, include_inactive=include_inactive)


@router.get("/users/{user_id}/residences", response=List[ResidenceOut], auth=None)
def user_residences(request: HttpRequest, user_id: UUID, include_inactive: bool = False):
    user = require_auth(request)
    if user.id != user_id and not is_superadmin(user.id):
        raise Forbidden("Permission denied")
    return ResidentService.list_units_by_user(user_id, include_inactive=include_inactive)
