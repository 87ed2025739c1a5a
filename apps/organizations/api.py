from typing import List
from uuid import UUID
from ninja import Router
from django.http import HttpRequest

from apps.core.exceptions import NotFound
from apps.identity.api import require_auth
from apps.identity.decorators import scoped_access
from .dtos import CompanyIn, CompanyOut, CompanyUpdate, CondoIn, CondoOut, CondoUpdate
from . import services

router = Router(tags=["Organizations"])


@router.post("", response={201: CompanyOut}, auth=None)
def create_company(request: HttpRequest, payload: CompanyIn):
    """
    Create a company. Superadmin only; the admin user (or the creator)
    becomes its company_admin.
    """
    user = require_auth(request)
    return 201, services.create_company(payload, created_by=user)


@router.get("", response=List[CompanyOut], auth=None)
def list_companies(request: HttpRequest):
    user = require_auth(request)
    return services.list_companies_for_user(user.id)


@router.get("/{company_id}", response=CompanyOut, auth=None)
@scoped_access('company', 'company_id')
def get_company(request: HttpRequest, company_id: UUID):
    return services.get_company(company_id)


@router.patch("/{company_id}", response=CompanyOut, auth=None)
def update_company(request: HttpRequest, company_id: UUID, payload: CompanyUpdate):
    user = require_auth(request)
    return services.update_company(company_id, payload, performed_by=user)


@router.delete("/{company_id}", response={204: None}, auth=None)
def delete_company(request: HttpRequest, company_id: UUID):
    user = require_auth(request)
    services.delete_company(company_id, performed_by=user)
    return 204, None


# =============================================================================
# Condos
# =============================================================================

@router.get("/{company_id}/condos", response=List[CondoOut], auth=None)
def list_condos(request: HttpRequest, company_id: UUID):
    user = require_auth(request)
    if services.get_company(company_id) is None:
        raise NotFound("Company")
    return services.list_condos_for_user(company_id, user.id)


@router.post("/{company_id}/condos", response={201: CondoOut}, auth=None)
def create_condo(request: HttpRequest, company_id: UUID, payload: CondoIn):
    user = require_auth(request)
    return 201, services.create_condo(company_id, payload, performed_by=user)


@router.get("/condos/{condo_id}", response=CondoOut, auth=None)
@scoped_access('condo', 'condo_id')
def get_condo(request: HttpRequest, condo_id: UUID):
    return services.get_condo(condo_id)


@router.patch("/condos/{condo_id}", response=CondoOut, auth=None)
def update_condo(request: HttpRequest, condo_id: UUID, payload: CondoUpdate):
    user = require_auth(request)
    return services.update_condo(condo_id, payload, performed_by=user)


@router.delete("/condos/{condo_id}", response={204: None}, auth=None)
def delete_condo(request: HttpRequest, condo_id: UUID):
    user = require_auth(request)
    services.delete_condo(condo_id, performed_by=user)
    return 204, None
