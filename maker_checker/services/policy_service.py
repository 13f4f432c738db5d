"""
Policy rule store.

Admins create and edit rules; the risk engine only ever reads the
active set. There is no rule versioning: toggling is_active is how
a rule is taken in or out of screening.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maker_checker.errors import DependencyError, NotFoundError, ValidationError
from maker_checker.models.enums import AuditAction, RuleType
from maker_checker.models.policy import PolicyRule
from maker_checker.schemas.policy import PolicyRuleCreate, PolicyRuleUpdate
from maker_checker.services.audit_service import (
    AUDIT_WRITE_WARNING,
    AuditLogger,
    snapshot,
)

logger = logging.getLogger(__name__)

RULE_AUDIT_FIELDS = ["name", "rule_type", "threshold_value", "is_active", "description"]


class PolicyService:

    def __init__(self, db: Session, ip_address: str | None = None):
        self.db = db
        self.audit = AuditLogger(db, ip_address)
        self.warnings: list[str] = []

    def _validate_threshold(self, rule_type: RuleType, threshold: Decimal | None):
        if rule_type == RuleType.AMOUNT_THRESHOLD:
            if threshold is None or threshold <= 0:
                raise ValidationError(
                    "Amount threshold rules need a positive threshold value"
                )

    def _audit(self, actor_id, action, rule, old_values=None):
        entry = self.audit.record(
            actor_id, action, "policy_rule", rule.id,
            old_values=old_values,
            new_values=snapshot(rule, RULE_AUDIT_FIELDS),
        )
        if entry is None:
            self.warnings.append(AUDIT_WRITE_WARNING)

    def get_active_rules(self) -> list[PolicyRule]:
        """
        Load every active rule, in a stable order.

        Raises DependencyError if the rule store cannot be read;
        a transaction that cannot be screened must not look clean.
        """
        try:
            rules = self.db.execute(
                select(PolicyRule)
                .where(PolicyRule.is_active.is_(True))
                .order_by(PolicyRule.id)
            ).scalars().all()
        except SQLAlchemyError as e:
            logger.exception("Could not load active policy rules")
            raise DependencyError(f"Rule store unavailable: {e}") from e
        return list(rules)

    def list_rules(self) -> list[PolicyRule]:
        rules = self.db.execute(
            select(PolicyRule).order_by(PolicyRule.id)
        ).scalars().all()
        return list(rules)

    def get_rule(self, rule_id: int) -> PolicyRule:
        rule = self.db.get(PolicyRule, rule_id)
        if not rule:
            raise NotFoundError(f"Policy rule {rule_id} not found")
        return rule

    def create_rule(self, request: PolicyRuleCreate, actor_id: int) -> PolicyRule:
        """Create a rule. Audited as POLICY_CREATED."""
        self._validate_threshold(request.rule_type, request.threshold_value)

        rule = PolicyRule(
            name=request.name,
            rule_type=request.rule_type,
            threshold_value=request.threshold_value,
            is_active=request.is_active,
            description=request.description,
        )
        self.db.add(rule)
        self.db.flush()

        self._audit(actor_id, AuditAction.POLICY_CREATED, rule)
        logger.info("Policy rule %s (%s) created", rule.id, rule.rule_type.value)
        return rule

    def update_rule(
        self, rule_id: int, request: PolicyRuleUpdate, actor_id: int
    ) -> PolicyRule:
        """Edit name, description or threshold. Audited as POLICY_UPDATED."""
        rule = self.get_rule(rule_id)
        old_values = snapshot(rule, RULE_AUDIT_FIELDS)

        changes = request.model_dump(exclude_unset=True)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Rule name cannot be empty")
        threshold = changes.get("threshold_value", rule.threshold_value)
        self._validate_threshold(rule.rule_type, threshold)

        for field, value in changes.items():
            setattr(rule, field, value)
        self.db.flush()

        self._audit(actor_id, AuditAction.POLICY_UPDATED, rule, old_values)
        return rule

    def set_active(self, rule_id: int, is_active: bool, actor_id: int) -> PolicyRule:
        """Switch a rule in or out of screening. Audited as POLICY_UPDATED."""
        rule = self.get_rule(rule_id)
        old_values = snapshot(rule, RULE_AUDIT_FIELDS)

        rule.is_active = is_active
        self.db.flush()

        self._audit(actor_id, AuditAction.POLICY_UPDATED, rule, old_values)
        logger.info(
            "Policy rule %s %s", rule.id, "activated" if is_active else "deactivated"
        )
        return rule
