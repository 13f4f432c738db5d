"""
Pydantic schemas for the audit trail.
"""

from datetime import datetime

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    user_id: int | None
    action: str
    entity_type: str
    entity_id: str
    old_values: dict | None
    new_values: dict | None
    ip_address: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
