"""
Pydantic schemas for the in-app notification inbox.
"""

from datetime import datetime

from pydantic import BaseModel

from maker_checker.models.enums import NotificationType


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: NotificationType
    entity_type: str | None
    entity_id: str | None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    unread_count: int


class MarkReadRequest(BaseModel):
    """Mark one notification (id) or the whole inbox (all) as read."""
    id: int | None = None
    all: bool = False


class MarkReadResponse(BaseModel):
    updated: int
    unread_count: int
