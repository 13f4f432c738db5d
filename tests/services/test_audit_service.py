"""
Tests for the AuditLogger.
"""

from decimal import Decimal

import pytest

from maker_checker.models.audit_log import AuditLog
from maker_checker.models.enums import AuditAction, RuleType, TransactionStatus
from maker_checker.models.policy import PolicyRule
from maker_checker.services.audit_service import AuditLogger, to_json_value


def flushed_change(db_session):
    """Audit writes always follow a flushed business change."""
    rule = PolicyRule(name="Any", rule_type=RuleType.TIME_BASED)
    db_session.add(rule)
    db_session.flush()
    return rule


class TestRecord:

    def test_record_writes_one_entry(self, db_session, admin):
        rule = flushed_change(db_session)

        entry = AuditLogger(db_session).record(
            admin.id, AuditAction.POLICY_CREATED, "policy_rule", rule.id,
            new_values={"name": "Any"},
        )
        db_session.commit()

        assert entry is not None
        stored = db_session.query(AuditLog).one()
        assert stored.action == "POLICY_CREATED"
        assert stored.entity_id == str(rule.id)
        assert stored.new_values == {"name": "Any"}
        assert stored.old_values is None

    def test_failed_write_returns_none_and_keeps_business_change(self, db_session, admin):
        rule = flushed_change(db_session)

        # object() cannot be serialized to JSON
        entry = AuditLogger(db_session).record(
            admin.id, AuditAction.POLICY_CREATED, "policy_rule", rule.id,
            new_values={"bad": object()},
        )
        db_session.commit()

        assert entry is None
        assert db_session.query(AuditLog).count() == 0
        assert db_session.query(PolicyRule).count() == 1

    def test_failed_write_is_logged(self, db_session, admin, caplog):
        rule = flushed_change(db_session)

        AuditLogger(db_session).record(
            admin.id, AuditAction.POLICY_UPDATED, "policy_rule", rule.id,
            new_values={"bad": object()},
        )
        assert "Audit write failed for POLICY_UPDATED" in caplog.text


class TestAppendOnly:

    def test_entries_cannot_be_updated(self, db_session, admin):
        rule = flushed_change(db_session)
        entry = AuditLogger(db_session).record(
            admin.id, AuditAction.POLICY_CREATED, "policy_rule", rule.id
        )
        db_session.commit()

        entry.action = "TAMPERED"
        with pytest.raises(ValueError, match="append-only"):
            db_session.flush()

    def test_entries_cannot_be_deleted(self, db_session, admin):
        rule = flushed_change(db_session)
        entry = AuditLogger(db_session).record(
            admin.id, AuditAction.POLICY_CREATED, "policy_rule", rule.id
        )
        db_session.commit()

        db_session.delete(entry)
        with pytest.raises(ValueError, match="append-only"):
            db_session.flush()


class TestListEntries:

    def test_newest_first_with_filters(self, db_session, admin, checker):
        rule = flushed_change(db_session)
        logger = AuditLogger(db_session)
        logger.record(admin.id, AuditAction.POLICY_CREATED, "policy_rule", rule.id)
        logger.record(checker.id, AuditAction.TRANSACTION_APPROVED, "transaction", 5)
        logger.record(admin.id, AuditAction.POLICY_UPDATED, "policy_rule", rule.id)
        db_session.commit()

        everything = logger.list_entries()
        assert [e.action for e in everything] == [
            "POLICY_UPDATED", "TRANSACTION_APPROVED", "POLICY_CREATED",
        ]
        assert len(logger.list_entries(actor_id=admin.id)) == 2
        assert len(logger.list_entries(entity_type="transaction", entity_id=5)) == 1
        assert len(logger.list_entries(action="POLICY_CREATED")) == 1
        assert len(logger.list_entries(limit=1, offset=2)) == 1


def test_json_values():
    assert to_json_value(TransactionStatus.APPROVED) == "approved"
    assert to_json_value(Decimal("10.50")) == "10.50"
    assert to_json_value(None) is None
