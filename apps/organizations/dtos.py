from ninja import Schema
from ninja.orm import create_schema
from uuid import UUID
from typing import Optional
from .models import Company, Condo

CompanyOut = create_schema(Company, exclude=['deleted_at', 'updated_at'])
CondoOut = create_schema(Condo, exclude=['deleted_at', 'updated_at'])


class CompanyIn(Schema):
    name: str
    legal_name: str = ""
    inn: Optional[str] = None
    address: str = ""
    phone: str = ""
    email: str = ""
    # Receives the company_admin grant; defaults to the creator
    admin_user_id: Optional[UUID] = None


class CompanyUpdate(Schema):
    name: Optional[str] = None
    legal_name: Optional[str] = None
    inn: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class CondoIn(Schema):
    name: str
    address: str = ""


class CondoUpdate(Schema):
    name: Optional[str] = None
    address: Optional[str] = None
    is_active: Optional[bool] = None
