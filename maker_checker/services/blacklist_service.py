"""
Blacklist service — flagged account numbers.

Every mutation is paired with an audit entry. The risk engine
only reads through find_active_match().
"""

import logging

from sqlalchemy import select, or_
from sqlalchemy.orm import Session

from maker_checker.errors import ConflictError, NotFoundError
from maker_checker.models.blacklist import BlacklistEntry
from maker_checker.models.enums import AuditAction
from maker_checker.schemas.blacklist import BlacklistEntryCreate
from maker_checker.services.audit_service import (
    AUDIT_WRITE_WARNING,
    AuditLogger,
    snapshot,
)

logger = logging.getLogger(__name__)

ENTRY_AUDIT_FIELDS = ["account_number", "entity_name", "reason", "is_active"]


class BlacklistService:

    def __init__(self, db: Session, ip_address: str | None = None):
        self.db = db
        self.audit = AuditLogger(db, ip_address)
        self.warnings: list[str] = []

    def _audit(self, actor_id, action, entry_id, old_values=None, new_values=None):
        recorded = self.audit.record(
            actor_id, action, "blacklist", entry_id,
            old_values=old_values,
            new_values=new_values,
        )
        if recorded is None:
            self.warnings.append(AUDIT_WRITE_WARNING)

    def get_entry(self, entry_id: int) -> BlacklistEntry:
        entry = self.db.get(BlacklistEntry, entry_id)
        if not entry:
            raise NotFoundError(f"Blacklist entry {entry_id} not found")
        return entry

    def list_entries(self, active_only: bool = False) -> list[BlacklistEntry]:
        query = select(BlacklistEntry)
        if active_only:
            query = query.where(BlacklistEntry.is_active.is_(True))
        entries = self.db.execute(
            query.order_by(BlacklistEntry.created_at.desc(), BlacklistEntry.id.desc())
        ).scalars().all()
        return list(entries)

    def find_active_match(self, *account_numbers: str) -> BlacklistEntry | None:
        """Return the first active entry matching any of the accounts."""
        candidates = [a for a in account_numbers if a]
        if not candidates:
            return None
        return self.db.execute(
            select(BlacklistEntry)
            .where(
                BlacklistEntry.is_active.is_(True),
                or_(*(BlacklistEntry.account_number == a for a in candidates)),
            )
            .order_by(BlacklistEntry.id)
            .limit(1)
        ).scalar_one_or_none()

    def add_entry(self, request: BlacklistEntryCreate, actor_id: int) -> BlacklistEntry:
        """Flag an account number. Audited as BLACKLIST_ADDED."""
        account_number = request.account_number.strip()
        if self.find_active_match(account_number):
            raise ConflictError(
                f"Account {account_number} is already on the blacklist"
            )

        entry = BlacklistEntry(
            account_number=account_number,
            entity_name=request.entity_name,
            reason=request.reason,
            created_by=actor_id,
        )
        self.db.add(entry)
        self.db.flush()

        self._audit(
            actor_id, AuditAction.BLACKLIST_ADDED, entry.id,
            new_values=snapshot(entry, ENTRY_AUDIT_FIELDS),
        )
        logger.info("Account %s added to blacklist", account_number)
        return entry

    def set_active(self, entry_id: int, is_active: bool, actor_id: int) -> BlacklistEntry:
        """Activate or deactivate an entry. Audited as BLACKLIST_UPDATED."""
        entry = self.get_entry(entry_id)
        if is_active and not entry.is_active:
            duplicate = self.find_active_match(entry.account_number)
            if duplicate:
                raise ConflictError(
                    f"Account {entry.account_number} is already on the blacklist"
                )

        old_values = {"is_active": entry.is_active}
        entry.is_active = is_active
        self.db.flush()

        self._audit(
            actor_id, AuditAction.BLACKLIST_UPDATED, entry.id,
            old_values=old_values,
            new_values={"is_active": is_active},
        )
        return entry

    def remove_entry(self, entry_id: int, actor_id: int) -> None:
        """Delete an entry. The audit row keeps what was removed."""
        entry = self.get_entry(entry_id)
        old_values = snapshot(entry, ENTRY_AUDIT_FIELDS)

        self.db.delete(entry)
        self.db.flush()

        self._audit(
            actor_id, AuditAction.BLACKLIST_REMOVED, entry_id,
            old_values=old_values,
        )
        logger.info("Blacklist entry %s removed", entry_id)
