"""
Audit logger — the append-only trail of every committed mutation.

Each workflow, blacklist and policy operation calls record()
exactly once, after its own change has been flushed. The audit
row is written inside a SAVEPOINT: if that write fails, only the
audit row is rolled back, a warning is logged, and the business
change stands. Availability of the workflow wins over log
completeness.
"""

import enum
import logging
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maker_checker.models.audit_log import AuditLog
from maker_checker.models.enums import AuditAction

logger = logging.getLogger(__name__)

AUDIT_WRITE_WARNING = "The change was saved but its audit record could not be written."


def snapshot(obj, fields: list[str]) -> dict:
    """Capture JSON-safe values of selected attributes for the audit trail."""
    return {name: to_json_value(getattr(obj, name)) for name in fields}


def to_json_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


class AuditLogger:

    def __init__(self, db: Session, ip_address: str | None = None):
        self.db = db
        # Origin of the request this logger records for
        self.ip_address = ip_address

    def record(
        self,
        actor_id: int | None,
        action: AuditAction | str,
        entity_type: str,
        entity_id,
        old_values: dict | None = None,
        new_values: dict | None = None,
        ip_address: str | None = None,
    ) -> AuditLog | None:
        """
        Append one audit entry.

        Returns the entry, or None when the write failed. A failure
        never propagates: callers turn it into a warning.
        """
        action_code = action.value if isinstance(action, AuditAction) else action
        entry = AuditLog(
            user_id=actor_id,
            action=action_code,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_values=old_values,
            new_values=new_values,
            ip_address=ip_address or self.ip_address,
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
        except SQLAlchemyError:
            logger.warning(
                "Audit write failed for %s on %s:%s",
                action_code, entity_type, entity_id,
                exc_info=True,
            )
            return None
        return entry

    def list_entries(
        self,
        actor_id: int | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLog]:
        """Return audit entries, newest first, with optional filters."""
        query = select(AuditLog)
        if actor_id is not None:
            query = query.where(AuditLog.user_id == actor_id)
        if action:
            query = query.where(AuditLog.action == action)
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.where(AuditLog.entity_id == str(entity_id))

        entries = self.db.execute(
            query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(entries)
