"""
Blacklist management endpoints.

Checkers may read the list; only admins change it.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from maker_checker.api.deps import client_ip, require_roles, to_http_exception
from maker_checker.errors import ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.user import ADMIN_ROLES, REVIEWER_ROLES, User
from maker_checker.schemas.blacklist import (
    BlacklistEntryCreate,
    BlacklistEntryResponse,
    BlacklistEntryUpdate,
    BlacklistMutationResponse,
)
from maker_checker.services.blacklist_service import BlacklistService

router = APIRouter(prefix="/blacklist", tags=["Blacklist"])

require_admin = require_roles(*ADMIN_ROLES)


def _mutation(service: BlacklistService, entry) -> BlacklistMutationResponse:
    return BlacklistMutationResponse(
        entry=BlacklistEntryResponse.model_validate(entry),
        warnings=service.warnings,
    )


@router.get("", response_model=list[BlacklistEntryResponse])
def list_entries(
    active_only: bool = False,
    user: User = Depends(require_roles(*REVIEWER_ROLES)),
    db: Session = Depends(get_db),
):
    """List blacklist entries, newest first."""
    return BlacklistService(db).list_entries(active_only=active_only)


@router.post("", response_model=BlacklistMutationResponse, status_code=201)
def add_entry(
    request: BlacklistEntryCreate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Put an account number on the blacklist."""
    service = BlacklistService(db, ip)
    try:
        entry = service.add_entry(request, user.id)
        db.commit()
        return _mutation(service, entry)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.patch("/{entry_id}", response_model=BlacklistMutationResponse)
def update_entry(
    entry_id: int,
    request: BlacklistEntryUpdate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Activate or deactivate an entry."""
    service = BlacklistService(db, ip)
    try:
        entry = service.set_active(entry_id, request.is_active, user.id)
        db.commit()
        return _mutation(service, entry)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.delete("/{entry_id}")
def remove_entry(
    entry_id: int,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Delete an entry. The audit trail keeps what it said."""
    service = BlacklistService(db, ip)
    try:
        service.remove_entry(entry_id, user.id)
        db.commit()
        return {"deleted": entry_id, "warnings": service.warnings}
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)
