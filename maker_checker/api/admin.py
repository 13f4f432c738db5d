"""
User administration endpoints. Superadmins only.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from maker_checker.api.deps import client_ip, require_roles, to_http_exception
from maker_checker.errors import ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.enums import UserRole
from maker_checker.models.user import User
from maker_checker.schemas.auth import (
    PrivilegedUserCreate,
    UserListResponse,
    UserMutationResponse,
    UserResponse,
)
from maker_checker.services.auth_service import AuthService
from maker_checker.services.notification_service import Mailer, get_mailer

router = APIRouter(prefix="/admin", tags=["Admin"])

require_superadmin = require_roles(UserRole.SUPERADMIN)


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: UserRole | None = None,
    search: str | None = Query(default=None, max_length=255),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    """Users newest first. search matches email or either name."""
    users, total = AuthService(db, mailer).list_users(
        role=role, search=search, page=page, limit=limit
    )
    return UserListResponse(
        data=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        limit=limit,
        has_more=page * limit < total,
    )


@router.post("/users", response_model=UserMutationResponse, status_code=201)
def create_privileged_user(
    request: PrivilegedUserCreate,
    admin: User = Depends(require_superadmin),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """
    Create a checker or admin.

    The temporary password is emailed before the account is
    created; a failed send leaves nothing behind.
    """
    service = AuthService(db, mailer, ip_address=ip)
    try:
        user = service.create_privileged_user(
            admin, request.email, request.first_name, request.last_name, request.role
        )
        db.commit()
        return UserMutationResponse(
            user=UserResponse.model_validate(user), warnings=service.warnings
        )
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)
