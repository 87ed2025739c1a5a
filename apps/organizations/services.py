"""
Services for Organizations app.
This is the public API for other apps to interact with companies and condos.
"""
import logging
from typing import List, Optional
from uuid import UUID

from django.db import IntegrityError, transaction
from django.db.models import Q

from apps.core.exceptions import Conflict, Forbidden, NotFound
from apps.governance.audit_service import AuditAction, log_action
from apps.identity.models import Role, UserRole
from apps.identity.permissions import ADMIN_ROLES, Scope, can_access, has_company_role, is_superadmin
from .dtos import CompanyIn, CompanyUpdate, CondoIn, CondoUpdate
from .models import Company, Condo

logger = logging.getLogger(__name__)


def _actor_id(user):
    return getattr(user, 'pk', user)


def _apply(instance, data: dict):
    for key, value in data.items():
        if value is not None:
            setattr(instance, key, value)


# =============================================================================
# Companies
# =============================================================================

def get_company(company_id: UUID) -> Optional[Company]:
    return Company.objects.alive().filter(id=company_id).first()


def list_companies_for_user(user_id) -> List[Company]:
    """Superadmins see every company; others see companies they hold a grant in."""
    queryset = Company.objects.alive()
    if is_superadmin(user_id):
        return list(queryset)

    grants = UserRole.objects.active().filter(user_id=user_id)
    return list(
        queryset.filter(
            Q(id__in=grants.filter(company__isnull=False).values('company_id'))
            | Q(condos__id__in=grants.filter(condo__isnull=False).values('condo_id'))
        ).distinct()
    )


def create_company(payload: CompanyIn, created_by) -> Company:
    """
    Create a company and its first company_admin grant in one transaction.
    Superadmin only.
    """
    creator_id = _actor_id(created_by)
    if not is_superadmin(creator_id):
        raise Forbidden("Only superadmins can create companies")

    data = payload.dict(exclude={'admin_user_id'})
    admin_user_id = payload.admin_user_id or creator_id

    with transaction.atomic():
        try:
            with transaction.atomic():
                company = Company.objects.create(**data)
        except IntegrityError:
            raise Conflict("A company with this INN already exists")

        UserRole.objects.create(
            user_id=admin_user_id,
            role=Role.COMPANY_ADMIN,
            company=company,
            granted_by_id=creator_id,
        )

        logger.info(f"Company created: company={company.id} admin={admin_user_id}")
        log_action(
            company_id=company.id,
            action=AuditAction.CREATE_COMPANY,
            target_type="Company",
            target_id=company.id,
            target_label=company.name,
            performed_by=creator_id,
        )
    return company


def update_company(company_id: UUID, payload: CompanyUpdate, performed_by) -> Company:
    company = get_company(company_id)
    if company is None:
        raise NotFound("Company")
    if not has_company_role(_actor_id(performed_by), company_id, (Role.COMPANY_ADMIN,)):
        raise Forbidden("Only company admins can update the company")

    _apply(company, payload.dict(exclude_unset=True))
    try:
        with transaction.atomic():
            company.save()
    except IntegrityError:
        raise Conflict("A company with this INN already exists")
    return company


def delete_company(company_id: UUID, performed_by) -> None:
    company = get_company(company_id)
    if company is None:
        raise NotFound("Company")
    if not is_superadmin(_actor_id(performed_by)):
        raise Forbidden("Only superadmins can delete companies")
    if company.condos.alive().exists():
        raise Conflict("Company still has condos")
    company.soft_delete()
    logger.info(f"Company deleted: company={company_id}")


# =============================================================================
# Condos
# =============================================================================

def get_condo(condo_id: UUID) -> Optional[Condo]:
    return Condo.objects.alive().filter(id=condo_id, company__deleted_at__isnull=True).first()


def list_condos_for_user(company_id: UUID, user_id) -> List[Condo]:
    """
    Condos of a company visible to the user: all of them for company-level
    roles, otherwise only the condos the user holds a grant in.
    """
    queryset = Condo.objects.alive().filter(company_id=company_id)
    if can_access(user_id, Scope.company(company_id)):
        return list(queryset)
    condo_ids = UserRole.objects.active().filter(user_id=user_id, condo__isnull=False).values('condo_id')
    return list(queryset.filter(id__in=condo_ids))


def create_condo(company_id: UUID, payload: CondoIn, performed_by) -> Condo:
    if get_company(company_id) is None:
        raise NotFound("Company")
    actor_id = _actor_id(performed_by)
    if not has_company_role(actor_id, company_id, (Role.COMPANY_ADMIN,)):
        raise Forbidden("Only company admins can create condos")

    with transaction.atomic():
        condo = Condo.objects.create(company_id=company_id, **payload.dict())
        logger.info(f"Condo created: condo={condo.id} company={company_id}")
        log_action(
            company_id=company_id,
            action=AuditAction.CREATE_CONDO,
            target_type="Condo",
            target_id=condo.id,
            target_label=condo.name,
            performed_by=actor_id,
        )
    return condo


def update_condo(condo_id: UUID, payload: CondoUpdate, performed_by) -> Condo:
    condo = get_condo(condo_id)
    if condo is None:
        raise NotFound("Condo")
    if not can_access(_actor_id(performed_by), Scope.condo(condo_id), ADMIN_ROLES):
        raise Forbidden("Only condo administrators can update the condo")

    _apply(condo, payload.dict(exclude_unset=True))
    condo.save()
    return condo


def delete_condo(condo_id: UUID, performed_by) -> None:
    condo = get_condo(condo_id)
    if condo is None:
        raise NotFound("Condo")
    actor_id = _actor_id(performed_by)
    if not has_company_role(actor_id, condo.company_id, (Role.COMPANY_ADMIN,)):
        raise Forbidden("Only company admins can delete condos")
    if condo.units.filter(deleted_at__isnull=True).exists():
        raise Conflict("Condo still has units")

    with transaction.atomic():
        condo.soft_delete()
        logger.info(f"Condo deleted: condo={condo_id}")
        log_action(
            company_id=condo.company_id,
            action=AuditAction.DELETE_CONDO,
            target_type="Condo",
            target_id=condo.id,
            target_label=condo.name,
            performed_by=actor_id,
        )
