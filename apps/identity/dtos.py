"""DTOs for Identity app."""
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID
from typing import Optional, List

from ninja import Schema


@dataclass(frozen=True)
class RoleGrantDTO:
    id: UUID
    role: str
    scope_level: str
    company_id: Optional[UUID]
    condo_id: Optional[UUID]
    is_active: bool


@dataclass(frozen=True)
class UserDTO:
    id: UUID
    username: str
    email: str
    first_name: str
    last_name: str
    phone: str
    is_active: bool
    roles: List[RoleGrantDTO] = field(default_factory=list)


class UserCreate(Schema):
    username: str
    email: str
    password: str
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None


class RoleGrantIn(Schema):
    user_id: UUID
    role: str
    company_id: Optional[UUID] = None
    condo_id: Optional[UUID] = None


class RoleGrantOut(Schema):
    id: UUID
    role: str
    scope_level: str
    company_id: Optional[UUID] = None
    condo_id: Optional[UUID] = None
    is_active: bool


class InviteIn(Schema):
    unit_id: UUID
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = "tenant"
    ttl_days: Optional[int] = None
    max_uses: Optional[int] = None


class InviteOut(Schema):
    id: UUID
    unit_id: UUID
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str
    expires_at: datetime
    max_uses: Optional[int] = None
    used_count: int
    is_active: bool
    created_at: datetime


class InviteCreatedOut(InviteOut):
    # The full token is returned once, to the creator only
    token: str


class InviteValidationOut(Schema):
    valid: bool
    reason: Optional[str] = None
    unit_number: Optional[str] = None


class InviteAcceptedOut(Schema):
    resident_id: UUID
    unit_id: UUID
    unit_number: str
    condo_id: UUID


class InviteStatsOut(Schema):
    total: int
    active: int
    expired: int
    exhausted: int
    total_uses: int
