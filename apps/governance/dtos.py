from ninja import Schema
from uuid import UUID
from datetime import datetime
from typing import Any, Optional


class AuditLogOut(Schema):
    id: UUID
    company_id: Optional[UUID] = None
    action: str
    target_type: str
    target_id: UUID
    target_label: str
    performed_by_name: Optional[str] = None
    performed_at: datetime
    context: Any
