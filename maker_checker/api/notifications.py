"""
In-app notification inbox. Every caller only ever sees their own.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from maker_checker.api.deps import get_current_user, to_http_exception
from maker_checker.errors import ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.user import User
from maker_checker.schemas.notification import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationListResponse,
)
from maker_checker.services.notification_service import NotificationInbox

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread: bool = False,
    limit: int = Query(default=30, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Most recent notifications first, with the unread total."""
    inbox = NotificationInbox(db, user.id)
    return NotificationListResponse(
        data=inbox.recent(unread_only=unread, limit=limit),
        unread_count=inbox.unread_count(),
    )


@router.patch("", response_model=MarkReadResponse)
def mark_read(
    request: MarkReadRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark one notification, or all of them, as read."""
    if not request.all and request.id is None:
        raise HTTPException(status_code=400, detail="Provide a notification id or all=true")

    inbox = NotificationInbox(db, user.id)
    try:
        if request.all:
            updated = inbox.mark_all_read()
        else:
            inbox.mark_read(request.id)
            updated = 1
        db.commit()
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)
    return MarkReadResponse(updated=updated, unread_count=inbox.unread_count())
