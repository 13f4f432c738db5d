"""
Tests for the PolicyService rule store.
"""

from decimal import Decimal

import pytest

from maker_checker.errors import NotFoundError, ValidationError
from maker_checker.models.audit_log import AuditLog
from maker_checker.models.enums import AuditAction, RuleType
from maker_checker.schemas.policy import PolicyRuleCreate, PolicyRuleUpdate
from maker_checker.services.policy_service import PolicyService


def create(service, actor, **overrides):
    fields = dict(
        name="Large transfers",
        rule_type=RuleType.AMOUNT_THRESHOLD,
        threshold_value=Decimal("10000"),
    )
    fields.update(overrides)
    return service.create_rule(PolicyRuleCreate(**fields), actor.id)


class TestCreateRule:

    def test_create_is_audited(self, db_session, admin):
        service = PolicyService(db_session)
        rule = create(service, admin)
        db_session.commit()

        assert rule.id is not None
        assert rule.is_active is True
        entry = db_session.query(AuditLog).one()
        assert entry.action == AuditAction.POLICY_CREATED.value
        assert Decimal(entry.new_values["threshold_value"]) == Decimal("10000")
        assert service.warnings == []

    @pytest.mark.parametrize("threshold", [None, Decimal("0"), Decimal("-5")])
    def test_amount_rule_needs_positive_threshold(self, db_session, admin, threshold):
        with pytest.raises(ValidationError, match="positive threshold"):
            create(PolicyService(db_session), admin, threshold_value=threshold)

    def test_other_rule_types_need_no_threshold(self, db_session, admin):
        rule = create(
            PolicyService(db_session), admin,
            rule_type=RuleType.TIME_BASED, threshold_value=None,
        )
        assert rule.threshold_value is None


class TestUpdateRule:

    def test_update_records_old_and_new(self, db_session, admin):
        service = PolicyService(db_session)
        rule = create(service, admin)
        db_session.commit()

        service.update_rule(
            rule.id, PolicyRuleUpdate(threshold_value=Decimal("20000")), admin.id
        )
        db_session.commit()

        entry = db_session.query(AuditLog).order_by(AuditLog.id.desc()).first()
        assert entry.action == AuditAction.POLICY_UPDATED.value
        assert Decimal(entry.old_values["threshold_value"]) == Decimal("10000")
        assert Decimal(entry.new_values["threshold_value"]) == Decimal("20000")
        assert rule.name == "Large transfers"

    def test_update_cannot_clear_amount_threshold(self, db_session, admin):
        service = PolicyService(db_session)
        rule = create(service, admin)

        with pytest.raises(ValidationError):
            service.update_rule(rule.id, PolicyRuleUpdate(threshold_value=None), admin.id)

    def test_name_cannot_be_cleared(self, db_session, admin):
        service = PolicyService(db_session)
        rule = create(service, admin)
        db_session.commit()

        with pytest.raises(ValidationError, match="name cannot be empty"):
            service.update_rule(rule.id, PolicyRuleUpdate(name=None), admin.id)
        db_session.rollback()
        db_session.refresh(rule)
        assert rule.name == "Large transfers"

    def test_unknown_rule(self, db_session, admin):
        with pytest.raises(NotFoundError):
            PolicyService(db_session).update_rule(99, PolicyRuleUpdate(name="x"), admin.id)


class TestToggle:

    def test_only_active_rules_are_screened(self, db_session, admin):
        service = PolicyService(db_session)
        keep = create(service, admin, name="Keep")
        drop = create(service, admin, name="Drop")

        service.set_active(drop.id, False, admin.id)
        db_session.commit()

        assert [r.id for r in service.get_active_rules()] == [keep.id]
        assert len(service.list_rules()) == 2
