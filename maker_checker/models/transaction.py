"""
Transaction model.

A transaction is submitted by a maker and decided by a checker.
It never moves money itself; it is the request that needs dual
control before anything downstream may act on it.

The status follows a small state machine. Invalid transitions
are rejected, and approved/rejected are terminal.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, DateTime, Numeric, ForeignKey, Integer, Text,
    Enum as SAEnum, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from maker_checker.errors import ConflictError
from maker_checker.models.base import Base
from maker_checker.models.enums import (
    TransactionType, TransactionStatus, enum_values,
)


# Valid state transitions: the source of truth for the state machine.
# FLAGGED is a waypoint: a checker can still approve or reject it.
VALID_TRANSITIONS: dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.PENDING: {
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
        TransactionStatus.FLAGGED,
    },
    TransactionStatus.FLAGGED: {
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
    },
    TransactionStatus.APPROVED: set(),  # Terminal
    TransactionStatus.REJECTED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


def statuses_leading_to(target: TransactionStatus) -> list[TransactionStatus]:
    """Every status from which a transition to target is allowed."""
    return [
        status for status, targets in VALID_TRANSITIONS.items()
        if target in targets
    ]


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, unique=True, nullable=False, default=uuid.uuid4
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(
            TransactionType,
            name="transaction_type_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SAEnum(
            TransactionStatus,
            name="transaction_status_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(19, 4), nullable=False
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD"
    )
    source_account: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    destination_account: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )
    description: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )
    risk_score: Mapped[int | None] = mapped_column(
        Integer, nullable=True
    )
    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    reviewed_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    review_notes: Mapped[str | None] = mapped_column(
        Text, nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    creator: Mapped["User"] = relationship(foreign_keys=[created_by])
    reviewer: Mapped[Optional["User"]] = relationship(foreign_keys=[reviewed_by])
    violations: Mapped[list["PolicyViolation"]] = relationship(
        back_populates="transaction",
        order_by="PolicyViolation.id",
    )

    @validates("amount")
    def _freeze_amount(self, key, value):
        # The amount a checker reviewed must be the amount that was screened
        if self.id is not None and self.amount is not None and value != self.amount:
            raise ConflictError("Transaction amount cannot be changed after submission")
        return value

    def can_transition_to(self, new_status: TransactionStatus) -> bool:
        """Check if a state transition is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.transaction_type.value} "
            f"{self.amount} {self.currency} ({self.status.value})>"
        )
