"""
Audit log model.

Records every state-changing action with before/after snapshots.
In a dual-control system, auditability is not optional: every
approval, rejection and rule change must be traceable to an actor.
"""

from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, JSON, event
from sqlalchemy.orm import Mapped, mapped_column

from maker_checker.models.base import Base


class AuditLog(Base):
    """
    Immutable record of a system event.

    Audit logs are append-only. You never update or delete
    an audit record; the ORM refuses to flush either.
    """

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    # None for actions the system takes on its own (auto-flagging)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    old_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise ValueError("Audit log entries are append-only and cannot be updated")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise ValueError("Audit log entries are append-only and cannot be deleted")
