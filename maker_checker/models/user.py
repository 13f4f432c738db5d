"""
User model.

Makers submit transactions, checkers decide them, admins manage
rules and the blacklist. Superadmins create privileged users.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, Enum as SAEnum, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from maker_checker.models.base import Base
from maker_checker.models.enums import UserRole, enum_values


# Roles allowed to decide transactions and receive review notifications
REVIEWER_ROLES = frozenset({UserRole.CHECKER, UserRole.ADMIN, UserRole.SUPERADMIN})
ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SUPERADMIN})


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(
            UserRole,
            name="user_role_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=UserRole.MAKER,
    )
    mfa_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"
