from ninja import Schema
from ninja.orm import create_schema
from uuid import UUID
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from .models import Unit

UnitOut = create_schema(Unit, exclude=['deleted_at', 'updated_at'])


class UnitIn(Schema):
    number: str
    floor: Optional[int] = None
    area: Optional[Decimal] = None


class UnitUpdate(Schema):
    number: Optional[str] = None
    floor: Optional[int] = None
    area: Optional[Decimal] = None
    is_active: Optional[bool] = None


class ResidentIn(Schema):
    user_id: UUID
    unit_id: UUID
    is_owner: bool = False
    moved_in_at: Optional[datetime] = None


class ResidentUpdate(Schema):
    is_owner: Optional[bool] = None
    is_active: Optional[bool] = None
    moved_in_at: Optional[datetime] = None
    moved_out_at: Optional[datetime] = None


class ResidentOut(Schema):
    id: UUID
    user_id: UUID
    unit_id: UUID
    is_owner: bool
    is_active: bool
    moved_in_at: Optional[datetime] = None
    moved_out_at: Optional[datetime] = None
    created_at: datetime


class ResidentPageOut(Schema):
    items: List[ResidentOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ResidenceOut(Schema):
    """A user's residency seen from the user side."""
    id: UUID
    unit_id: UUID
    unit_number: str
    condo_id: UUID
    condo_name: str
    is_owner: bool
    is_active: bool
    moved_in_at: Optional[datetime] = None
    moved_out_at: Optional[datetime] = None

    @staticmethod
    def resolve_unit_number(obj):
        return obj.unit.number

    @staticmethod
    def resolve_condo_id(obj):
        return obj.unit.condo_id

    @staticmethod
    def resolve_condo_name(obj):
        return obj.unit.condo.name
