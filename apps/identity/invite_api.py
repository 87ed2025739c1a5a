"""
Invite API endpoints.

validate is public (rate-limited per IP and per token prefix);
accept requires authentication (rate-limited per user);
everything else is for administrators over the invite's unit.
"""
from typing import List
from uuid import UUID
from ninja import Router
from django.http import HttpRequest

from .api import require_auth
from .decorators import scoped_access
from .dtos import (
    InviteAcceptedOut,
    InviteCreatedOut,
    InviteIn,
    InviteOut,
    InviteStatsOut,
    InviteValidationOut,
)
from .invite_service import InviteService
from .permissions import ADMIN_ROLES
from .security import guard_invite_acceptance, guard_invite_validation

router = Router(tags=["Invites"])


@router.get("/validate/{token}", response=InviteValidationOut, auth=None)
def validate_invite(request: HttpRequest, token: str):
    """
    Check whether a token can be redeemed. Never reveals why it cannot.
    """
    guard_invite_validation(request, token)
    return InviteService.validate_invite(token)


@router.post("/accept/{token}", response=InviteAcceptedOut, auth=None)
def accept_invite(request: HttpRequest, token: str):
    """
    Redeem a token for the current user.
    """
    user = require_auth(request)
    guard_invite_acceptance(request, user.id)

    result = InviteService.accept_invite(token, user.id)
    return {
        'resident_id': result.resident.id,
        'unit_id': result.unit.id,
        'unit_number': result.unit.number,
        'condo_id': result.unit.condo_id,
    }


@router.post("", response={201: InviteCreatedOut}, auth=None)
def create_invite(request: HttpRequest, payload: InviteIn):
    user = require_auth(request)
    # An omitted max_uses falls back to the configured default; null means unlimited
    invite = InviteService.create_invite(
        payload.unit_id,
        created_by=user,
        email=payload.email,
        phone=payload.phone,
        role=payload.role,
        ttl_days=payload.ttl_days,
        **payload.dict(include={"max_uses"}, exclude_unset=True),
    )
    return 201, invite


@router.get("/unit/{unit_id}", response=List[InviteOut], auth=None)
@scoped_access('unit', 'unit_id', ADMIN_ROLES)
def list_unit_invites(request: HttpRequest, unit_id: UUID, include_expired: bool = False):
    return InviteService.list_invites_by_unit(unit_id, include_expired=include_expired)


@router.get("/unit/{unit_id}/stats", response=InviteStatsOut, auth=None)
@scoped_access('unit', 'unit_id', ADMIN_ROLES)
def unit_invite_stats(request: HttpRequest, unit_id: UUID):
    return InviteService.get_invite_stats(unit_id)


@router.get("/{invite_id}", response=InviteOut, auth=None)
@scoped_access('invite', 'invite_id', ADMIN_ROLES)
def get_invite(request: HttpRequest, invite_id: UUID):
    return InviteService.get_invite(invite_id)


@router.post("/{invite_id}/deactivate", response=InviteOut, auth=None)
def deactivate_invite(request: HttpRequest, invite_id: UUID):
    user = require_auth(request)
    return InviteService.deactivate_invite(invite_id, performed_by=user)


@router.delete("/{invite_id}", response={204: None}, auth=None)
def delete_invite(request: HttpRequest, invite_id: UUID):
    user = require_auth(request)
    InviteService.delete_invite(invite_id, performed_by=user)
    return 204, None
