"""
Transaction workflow — the maker-checker state machine.

create():
1. Validates the submission
2. Persists it as PENDING and audits the creation
3. Screens it synchronously with the risk engine
4. Records any violations
5. Flags it when the risk score reaches the flag threshold
6. Tells the checkers there is something to review

approve() / reject() / flag() apply a checker decision with a
conditional UPDATE, so when two checkers race on the same
transaction exactly one decision lands and the other gets a
ConflictError. The maker is told about the decision in-app.

rescreen() runs the current rules against an undecided
transaction again.

The caller controls the commit. A failed audit write does not undo
the status change; it is returned as a warning instead.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from maker_checker.config import Settings, get_settings
from maker_checker.errors import ConflictError, NotFoundError, ValidationError
from maker_checker.formatters import SUPPORTED_CURRENCIES, format_currency
from maker_checker.models.enums import AuditAction, NotificationType, TransactionStatus
from maker_checker.models.policy import PolicyViolation
from maker_checker.models.transaction import Transaction, statuses_leading_to
from maker_checker.models.user import User
from maker_checker.schemas.policy import AnalysisResult
from maker_checker.schemas.transaction import TransactionCreate
from maker_checker.services.audit_service import (
    AUDIT_WRITE_WARNING,
    AuditLogger,
    snapshot,
)
from maker_checker.services.notification_service import (
    Mailer,
    create_notification,
    notify_checkers,
)
from maker_checker.services.risk_engine import RiskAnalysisEngine

logger = logging.getLogger(__name__)

TRANSACTION_AUDIT_FIELDS = [
    "transaction_type", "amount", "currency", "source_account",
    "destination_account", "description", "status",
]
REVIEW_AUDIT_FIELDS = ["status", "reviewed_by", "review_notes"]

DECISION_ACTIONS = {
    TransactionStatus.APPROVED: AuditAction.TRANSACTION_APPROVED,
    TransactionStatus.REJECTED: AuditAction.TRANSACTION_REJECTED,
    TransactionStatus.FLAGGED: AuditAction.TRANSACTION_FLAGGED,
}


@dataclass
class WorkflowResult:
    transaction: Transaction
    analysis: AnalysisResult | None = None
    warnings: list[str] = field(default_factory=list)


class TransactionWorkflow:

    def __init__(
        self,
        db: Session,
        mailer: Mailer | None = None,
        settings: Settings | None = None,
        ip_address: str | None = None,
    ):
        self.db = db
        self.mailer = mailer
        self.settings = settings or get_settings()
        self.audit = AuditLogger(db, ip_address)
        self.engine = RiskAnalysisEngine(db, self.settings)

    def _audit(self, warnings, actor_id, action, txn, old_values=None, new_values=None):
        entry = self.audit.record(
            actor_id, action, "transaction", txn.id,
            old_values=old_values,
            new_values=new_values,
        )
        if entry is None:
            warnings.append(AUDIT_WRITE_WARNING)

    def _validate(self, request: TransactionCreate):
        if request.amount is None or request.amount <= 0:
            raise ValidationError("Amount must be positive")
        if not request.source_account or not request.source_account.strip():
            raise ValidationError("Source account is required")
        if not request.destination_account or not request.destination_account.strip():
            raise ValidationError("Destination account is required")
        if request.currency.upper() not in SUPPORTED_CURRENCIES:
            raise ValidationError(
                f"Unsupported currency '{request.currency}'. "
                f"Supported: {', '.join(SUPPORTED_CURRENCIES)}"
            )

    # --- Maker ---

    def create(self, request: TransactionCreate, creator: User) -> WorkflowResult:
        """
        Submit a transaction for dual control.

        Returns the created record whether or not it was flagged.
        Raises DependencyError if it could not be screened; an
        unscreened transaction never enters the review queue.
        """
        self._validate(request)

        txn = Transaction(
            transaction_type=request.transaction_type,
            amount=request.amount,
            currency=request.currency.upper(),
            source_account=request.source_account.strip(),
            destination_account=request.destination_account.strip(),
            description=request.description,
            status=TransactionStatus.PENDING,
            created_by=creator.id,
        )
        self.db.add(txn)
        self.db.flush()

        result = WorkflowResult(transaction=txn)
        self._audit(
            result.warnings, creator.id, AuditAction.TRANSACTION_CREATED, txn,
            new_values=snapshot(txn, TRANSACTION_AUDIT_FIELDS),
        )

        analysis = self.engine.analyze(txn)
        self.engine.save_violations(analysis.violations)
        txn.risk_score = analysis.risk_score
        result.analysis = analysis

        if analysis.risk_score >= self.settings.RISK_FLAG_THRESHOLD:
            txn.status = TransactionStatus.FLAGGED
            self.db.flush()
            # No human actor: the system flagged it
            self._audit(
                result.warnings, None, AuditAction.TRANSACTION_FLAGGED, txn,
                old_values={"status": TransactionStatus.PENDING.value},
                new_values={
                    "status": TransactionStatus.FLAGGED.value,
                    "risk_score": analysis.risk_score,
                },
            )
            logger.info(
                "Transaction %s auto-flagged with risk score %d",
                txn.id, analysis.risk_score,
            )
        else:
            self.db.flush()

        self._notify_reviewers(txn, creator)
        return result

    def _notify_reviewers(self, txn: Transaction, creator: User):
        title = (
            "Flagged transaction needs review"
            if txn.status == TransactionStatus.FLAGGED
            else "New transaction needs review"
        )
        message = (
            f"{creator.full_name} submitted a "
            f"{txn.transaction_type.value.replace('_', ' ')} of "
            f"{format_currency(txn.amount, txn.currency)} to account "
            f"{txn.destination_account} (risk score {txn.risk_score})."
        )
        notify_checkers(
            self.db, self.mailer, title, message,
            entity_type="transaction", entity_id=txn.id,
        )

    def _notify_maker(self, txn: Transaction, reviewer: User):
        verb = txn.status.value
        message = (
            f"Your {txn.transaction_type.value.replace('_', ' ')} of "
            f"{format_currency(txn.amount, txn.currency)} was {verb} by "
            f"{reviewer.full_name}."
        )
        if txn.review_notes:
            message += f" Notes: {txn.review_notes}"
        create_notification(
            self.db, txn.created_by, f"Transaction {verb}", message,
            NotificationType.TRANSACTION, "transaction", txn.id,
        )

    # --- Checker ---

    def _decide(
        self,
        transaction_id: int,
        reviewer: User,
        new_status: TransactionStatus,
        notes: str | None,
    ) -> WorkflowResult:
        txn = self.get_transaction(transaction_id)
        if txn.is_terminal:
            raise ConflictError(
                f"Transaction {transaction_id} has already been reviewed "
                f"(status: {txn.status.value})"
            )
        if not txn.can_transition_to(new_status):
            raise ConflictError(
                f"Transaction {transaction_id} cannot move from "
                f"{txn.status.value} to {new_status.value}"
            )

        if txn.created_by == reviewer.id:
            if self.settings.ENFORCE_SEGREGATION_OF_DUTIES:
                raise ConflictError("You cannot review a transaction you submitted")
            logger.warning(
                "User %s is reviewing their own transaction %s",
                reviewer.id, transaction_id,
            )

        old_values = snapshot(txn, REVIEW_AUDIT_FIELDS)
        now = datetime.utcnow()

        # Only applies if nobody else decided since we read it
        outcome = self.db.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status.in_(statuses_leading_to(new_status)),
            )
            .values(
                status=new_status,
                reviewed_by=reviewer.id,
                review_notes=notes,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount == 0:
            raise ConflictError(
                f"Transaction {transaction_id} has already been reviewed"
            )

        txn = self.db.get(Transaction, transaction_id, populate_existing=True)

        result = WorkflowResult(transaction=txn)
        self._audit(
            result.warnings, reviewer.id, DECISION_ACTIONS[new_status], txn,
            old_values=old_values,
            new_values=snapshot(txn, REVIEW_AUDIT_FIELDS),
        )
        logger.info(
            "Transaction %s %s by user %s",
            transaction_id, new_status.value, reviewer.id,
        )
        if txn.created_by != reviewer.id:
            self._notify_maker(txn, reviewer)
        return result

    def approve(
        self, transaction_id: int, reviewer: User, notes: str | None = None
    ) -> WorkflowResult:
        """Approve a pending or flagged transaction."""
        return self._decide(
            transaction_id, reviewer, TransactionStatus.APPROVED, notes or None
        )

    def reject(self, transaction_id: int, reviewer: User, notes: str) -> WorkflowResult:
        """Reject a pending or flagged transaction. A reason is mandatory."""
        if not notes or not notes.strip():
            raise ValidationError("A reason is required to reject a transaction")
        return self._decide(
            transaction_id, reviewer, TransactionStatus.REJECTED, notes.strip()
        )

    def flag(
        self, transaction_id: int, reviewer: User, notes: str | None = None
    ) -> WorkflowResult:
        """Mark a pending transaction for elevated scrutiny."""
        return self._decide(
            transaction_id, reviewer, TransactionStatus.FLAGGED, notes or None
        )

    def rescreen(self, transaction_id: int, reviewer: User) -> WorkflowResult:
        """
        Screen an undecided transaction against the current rules.

        New violations are recorded next to the earlier ones and the
        risk score is replaced. A pending transaction whose new score
        reaches the flag threshold is flagged.
        """
        txn = self.get_transaction(transaction_id)
        if txn.is_terminal:
            raise ConflictError(
                f"Transaction {transaction_id} has already been reviewed "
                f"(status: {txn.status.value})"
            )

        analysis = self.engine.analyze(txn)
        self.engine.save_violations(analysis.violations)
        old_score = txn.risk_score
        txn.risk_score = analysis.risk_score
        self.db.flush()

        result = WorkflowResult(transaction=txn, analysis=analysis)
        self._audit(
            result.warnings, reviewer.id, AuditAction.TRANSACTION_RESCREENED, txn,
            old_values={"risk_score": old_score},
            new_values={
                "risk_score": analysis.risk_score,
                "violations": len(analysis.violations),
            },
        )

        if (
            txn.status == TransactionStatus.PENDING
            and analysis.risk_score >= self.settings.RISK_FLAG_THRESHOLD
        ):
            outcome = self.db.execute(
                update(Transaction)
                .where(
                    Transaction.id == transaction_id,
                    Transaction.status == TransactionStatus.PENDING,
                )
                .values(status=TransactionStatus.FLAGGED, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if outcome.rowcount == 0:
                raise ConflictError(
                    f"Transaction {transaction_id} has already been reviewed"
                )
            result.transaction = self.db.get(
                Transaction, transaction_id, populate_existing=True
            )
            self._audit(
                result.warnings, reviewer.id, AuditAction.TRANSACTION_FLAGGED, txn,
                old_values={"status": TransactionStatus.PENDING.value},
                new_values={
                    "status": TransactionStatus.FLAGGED.value,
                    "risk_score": analysis.risk_score,
                },
            )

        logger.info(
            "Transaction %s re-screened by user %s: score %s -> %d",
            transaction_id, reviewer.id, old_score, analysis.risk_score,
        )
        return result

    # --- Reads ---

    def get_transaction(self, transaction_id: int) -> Transaction:
        """Get a transaction by ID."""
        txn = self.db.get(Transaction, transaction_id)
        if not txn:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def get_violations(self, transaction_id: int) -> list[PolicyViolation]:
        self.get_transaction(transaction_id)
        return self.engine.get_violations(transaction_id)

    def list_transactions(
        self,
        status: TransactionStatus | None = None,
        created_by: int | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Transaction]:
        """Transactions, newest first."""
        query = select(Transaction)
        if status is not None:
            query = query.where(Transaction.status == status)
        if created_by is not None:
            query = query.where(Transaction.created_by == created_by)
        transactions = self.db.execute(
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(transactions)

    def review_queue(self, limit: int = 100, offset: int = 0) -> list[Transaction]:
        """Pending and flagged transactions, oldest first."""
        transactions = self.db.execute(
            select(Transaction)
            .where(Transaction.status.in_([
                TransactionStatus.PENDING,
                TransactionStatus.FLAGGED,
            ]))
            .order_by(Transaction.created_at, Transaction.id)
            .limit(limit)
            .offset(offset)
        ).scalars().all()
        return list(transactions)
