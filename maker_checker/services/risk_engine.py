"""
Risk analysis engine — screens a transaction against every active rule.

analyze() has no side effects. It reads the active rules, the
transaction's recent history and the blacklist, and returns the
violations it found, an aggregate risk score and recommendations.
Recording the violations is a separate explicit step
(save_violations) so a caller can inspect the result first.

Each rule type has exactly one evaluator. The evaluator table is
checked against RuleType at import time, so a new rule type cannot
silently fall through unscreened.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable
from zoneinfo import ZoneInfo

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maker_checker.config import Settings, get_settings
from maker_checker.errors import DependencyError
from maker_checker.formatters import format_currency, format_timestamp
from maker_checker.models.enums import RuleType, Severity
from maker_checker.models.policy import PolicyRule, PolicyViolation
from maker_checker.models.transaction import Transaction
from maker_checker.schemas.policy import AnalysisResult, ViolationDraft
from maker_checker.services.blacklist_service import BlacklistService
from maker_checker.services.policy_service import PolicyService

logger = logging.getLogger(__name__)


# Contribution of each violation to the risk score
SEVERITY_SCORES: dict[Severity, int] = {
    Severity.CRITICAL: 40,
    Severity.HIGH: 25,
    Severity.MEDIUM: 15,
    Severity.LOW: 5,
}

MAX_RISK_SCORE = 100

RECOMMEND_REVIEW = "Review transaction details carefully before approval"
RECOMMEND_ESCALATE = "Escalate to senior management for approval"
RECOMMEND_VERIFY_BENEFICIARY = "Verify beneficiary identity before processing"

WEEKDAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def severity_for_amount(amount: Decimal, threshold: Decimal) -> Severity:
    """Pick severity by how far the amount overshoots the threshold."""
    ratio = Decimal(amount) / Decimal(threshold)
    if ratio > 10:
        return Severity.CRITICAL
    if ratio > 5:
        return Severity.HIGH
    if ratio > 2:
        return Severity.MEDIUM
    return Severity.LOW


def score_violations(violations) -> int:
    total = sum(SEVERITY_SCORES[v.severity] for v in violations)
    return min(total, MAX_RISK_SCORE)


def recommend(violations) -> list[str]:
    """Fixed recommendations, in a fixed order."""
    recommendations = []
    if violations:
        recommendations.append(RECOMMEND_REVIEW)
    if any(v.severity in (Severity.HIGH, Severity.CRITICAL) for v in violations):
        recommendations.append(RECOMMEND_ESCALATE)
    if any(v.rule_type == RuleType.BLACKLIST_CHECK for v in violations):
        recommendations.append(RECOMMEND_VERIFY_BENEFICIARY)
    return recommendations


def _business_zone(name: str):
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


class RiskAnalysisEngine:

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.policy_service = PolicyService(db)
        self.blacklist_service = BlacklistService(db)

    # --- Evaluators, one per rule type ---

    def _check_amount_threshold(
        self, rule: PolicyRule, txn: Transaction
    ) -> ViolationDraft | None:
        threshold = rule.threshold_value
        if not threshold or txn.amount <= threshold:
            return None
        return self._draft(
            rule, txn,
            severity=severity_for_amount(txn.amount, threshold),
            details=(
                f"Transaction amount ({format_currency(txn.amount, txn.currency)}) "
                f"exceeds threshold of {format_currency(threshold, txn.currency)}"
            ),
        )

    def _check_duplicate(
        self, rule: PolicyRule, txn: Transaction
    ) -> ViolationDraft | None:
        window_hours = self.settings.DUPLICATE_WINDOW_HOURS
        reference_time = txn.created_at or datetime.utcnow()
        cutoff = reference_time - timedelta(hours=window_hours)

        query = select(func.count(Transaction.id)).where(
            Transaction.destination_account == txn.destination_account,
            Transaction.amount == txn.amount,
            Transaction.created_at >= cutoff,
        )
        if txn.id is not None:
            query = query.where(Transaction.id != txn.id)
        matches = self.db.execute(query).scalar_one()

        if matches == 0:
            return None
        return self._draft(
            rule, txn,
            severity=Severity.HIGH if matches > 2 else Severity.MEDIUM,
            details=(
                f"Potential duplicate: {matches} similar transaction(s) found "
                f"in the last {window_hours} hours to the same account "
                f"with the same amount"
            ),
        )

    def _check_blacklist(
        self, rule: PolicyRule, txn: Transaction
    ) -> ViolationDraft | None:
        match = self.blacklist_service.find_active_match(
            txn.source_account, txn.destination_account
        )
        if not match:
            return None
        return self._draft(
            rule, txn,
            severity=Severity.CRITICAL,
            details=(
                f"Account {match.account_number} is on the blacklist. "
                f"Entity: {match.entity_name or 'Unknown'}. "
                f"Reason: {match.reason or 'Not specified'}"
            ),
        )

    def _check_time_based(
        self, rule: PolicyRule, txn: Transaction
    ) -> ViolationDraft | None:
        # Timestamps are stored as naive UTC
        created = txn.created_at or datetime.utcnow()
        local = created.replace(tzinfo=timezone.utc).astimezone(
            _business_zone(self.settings.BUSINESS_TIMEZONE)
        )
        start = self.settings.BUSINESS_START_HOUR
        end = self.settings.BUSINESS_END_HOUR

        off_day = local.weekday() not in self.settings.BUSINESS_DAYS
        off_hours = local.hour < start or local.hour >= end
        if not (off_day or off_hours):
            return None

        reasons = []
        if off_day:
            reasons.append(f"non-working day ({WEEKDAY_NAMES[local.weekday()]})")
        if off_hours:
            reasons.append(f"outside business hours {start:02d}:00-{end:02d}:00")
        return self._draft(
            rule, txn,
            severity=Severity.LOW,
            details=(
                f"Transaction created outside business hours "
                f"({format_timestamp(local)}): {', '.join(reasons)}"
            ),
        )

    def _draft(self, rule, txn, severity, details) -> ViolationDraft:
        return ViolationDraft(
            transaction_id=txn.id,
            rule_id=rule.id,
            rule_type=rule.rule_type,
            violation_details=details,
            severity=severity,
        )

    # --- Public API ---

    def analyze(self, txn: Transaction) -> AnalysisResult:
        """
        Evaluate every active rule against one transaction.

        Raises DependencyError if the active rules cannot be loaded;
        no partial result is ever returned.
        """
        rules = self.policy_service.get_active_rules()

        violations: list[ViolationDraft] = []
        try:
            for rule in rules:
                evaluator = EVALUATORS[rule.rule_type]
                violation = evaluator(self, rule, txn)
                if violation:
                    violations.append(violation)
        except SQLAlchemyError as e:
            logger.exception("Risk screening of transaction %s failed", txn.id)
            raise DependencyError(f"Risk screening failed: {e}") from e

        result = AnalysisResult(
            violations=violations,
            risk_score=score_violations(violations),
            recommendations=recommend(violations),
        )
        logger.debug(
            "Transaction %s screened: %d rule(s), %d violation(s), score %d",
            txn.id, len(rules), len(violations), result.risk_score,
        )
        return result

    def save_violations(self, violations: list[ViolationDraft]) -> list[PolicyViolation]:
        """Record violations as immutable evidence. Caller commits."""
        records = []
        for draft in violations:
            record = PolicyViolation(
                transaction_id=draft.transaction_id,
                rule_id=draft.rule_id,
                violation_details=draft.violation_details,
                severity=draft.severity,
            )
            self.db.add(record)
            records.append(record)
        if records:
            self.db.flush()
        return records

    def get_violations(self, transaction_id: int) -> list[PolicyViolation]:
        violations = self.db.execute(
            select(PolicyViolation)
            .where(PolicyViolation.transaction_id == transaction_id)
            .order_by(PolicyViolation.id)
        ).scalars().all()
        return list(violations)


Evaluator = Callable[[RiskAnalysisEngine, PolicyRule, Transaction], ViolationDraft | None]

EVALUATORS: dict[RuleType, Evaluator] = {
    RuleType.AMOUNT_THRESHOLD: RiskAnalysisEngine._check_amount_threshold,
    RuleType.DUPLICATE_DETECTION: RiskAnalysisEngine._check_duplicate,
    RuleType.BLACKLIST_CHECK: RiskAnalysisEngine._check_blacklist,
    RuleType.TIME_BASED: RiskAnalysisEngine._check_time_based,
}

_missing = set(RuleType) - set(EVALUATORS)
if _missing:
    raise RuntimeError(
        f"No risk evaluator for rule type(s): {sorted(m.value for m in _missing)}"
    )
