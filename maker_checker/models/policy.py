"""
Policy rule and policy violation models.

Rules are configured by admins and read by the risk engine.
Violations are the evidence the engine leaves behind: once
written they are never changed or removed.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, Numeric, ForeignKey, Text,
    Enum as SAEnum, event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from maker_checker.models.base import Base
from maker_checker.models.enums import RuleType, Severity, enum_values


class PolicyRule(Base):
    __tablename__ = "policy_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rule_type: Mapped[RuleType] = mapped_column(
        SAEnum(
            RuleType,
            name="policy_rule_type_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    threshold_value: Mapped[Decimal | None] = mapped_column(
        Numeric(19, 4), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, index=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return f"<PolicyRule {self.name} {self.rule_type.value} ({state})>"


class PolicyViolation(Base):
    """
    Immutable record of a rule that fired for a transaction.

    Like audit log entries, violations are append-only.
    """

    __tablename__ = "policy_violations"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"), nullable=False, index=True
    )
    rule_id: Mapped[int] = mapped_column(
        ForeignKey("policy_rules.id"), nullable=False, index=True
    )
    violation_details: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[Severity] = mapped_column(
        SAEnum(
            Severity,
            name="severity_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    transaction: Mapped["Transaction"] = relationship(back_populates="violations")
    rule: Mapped[PolicyRule] = relationship()

    def __repr__(self) -> str:
        return f"<PolicyViolation txn={self.transaction_id} {self.severity.value}>"


@event.listens_for(PolicyViolation, "before_update")
def _refuse_violation_update(mapper, connection, target):
    raise ValueError("Policy violations are write-once and cannot be updated")


@event.listens_for(PolicyViolation, "before_delete")
def _refuse_violation_delete(mapper, connection, target):
    raise ValueError("Policy violations are write-once and cannot be deleted")
