"""
Shared API dependencies: caller resolution, role guards and the
mapping from service errors to HTTP responses.

Authentication itself happens upstream. By the time a request
reaches these routes the session layer has put the caller's user
id in the X-User-Id header.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from maker_checker.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    SecurityError,
    ServiceError,
    ValidationError,
)
from maker_checker.models.base import get_db
from maker_checker.models.enums import UserRole
from maker_checker.models.user import User

logger = logging.getLogger(__name__)

user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
    DependencyError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SecurityError: status.HTTP_401_UNAUTHORIZED,
}


def to_http_exception(error: ServiceError) -> HTTPException:
    """Translate a service error into the HTTPException the client sees."""
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(error, DependencyError):
        logger.error("Dependency failure: %s", error.message)
    return HTTPException(status_code=status_code, detail=error.user_message)


def get_current_user(
    x_user_id: Optional[str] = Security(user_id_header),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the session header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header.",
        )

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user.",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled.",
        )
    return user


def require_roles(*roles: UserRole):
    """Dependency factory: only callers holding one of the roles pass."""
    allowed = frozenset(roles)

    def guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user.role.value}' may not perform this action.",
            )
        return user

    return guard


def client_ip(request: Request) -> Optional[str]:
    """Origin address recorded on audit entries."""
    return request.client.host if request.client else None
