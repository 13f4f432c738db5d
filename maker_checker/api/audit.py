"""
Audit trail endpoint. Read-only, admins only.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from maker_checker.api.deps import require_roles
from maker_checker.models.base import get_db
from maker_checker.models.user import ADMIN_ROLES, User
from maker_checker.schemas.audit import AuditLogResponse
from maker_checker.services.audit_service import AuditLogger

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=list[AuditLogResponse])
def list_audit_entries(
    actor_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(require_roles(*ADMIN_ROLES)),
    db: Session = Depends(get_db),
):
    """Audit entries, newest first."""
    return AuditLogger(db).list_entries(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        limit=limit,
        offset=offset,
    )
