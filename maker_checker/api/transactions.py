"""
Transaction API endpoints.

Makers submit; checkers (and admins) review. Every mutation
commits on success and rolls back on any service error.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from maker_checker.api.deps import (
    client_ip,
    get_current_user,
    require_roles,
    to_http_exception,
)
from maker_checker.errors import ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.enums import TransactionStatus
from maker_checker.models.user import REVIEWER_ROLES, User
from maker_checker.schemas.transaction import (
    ReviewRequest,
    TransactionCreate,
    TransactionDetailResponse,
    TransactionResponse,
    WorkflowResponse,
)
from maker_checker.services.notification_service import Mailer, get_mailer
from maker_checker.services.workflow_service import TransactionWorkflow

router = APIRouter(prefix="/transactions", tags=["Transactions"])

require_reviewer = require_roles(*REVIEWER_ROLES)


@router.post("", response_model=WorkflowResponse, status_code=201)
def create_transaction(
    request: TransactionCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """Submit a transaction for review. It is screened before it is queued."""
    workflow = TransactionWorkflow(db, mailer, ip_address=ip)
    try:
        result = workflow.create(request, user)
        db.commit()
        return workflow_response(result)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.get("", response_model=list[TransactionResponse])
def list_transactions(
    status: TransactionStatus | None = None,
    mine: bool = False,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List transactions, newest first. Makers only ever see their own."""
    created_by = user.id if mine or not user.is_reviewer else None
    workflow = TransactionWorkflow(db)
    return workflow.list_transactions(
        status=status, created_by=created_by, limit=limit, offset=offset
    )


@router.get("/queue", response_model=list[TransactionResponse])
def review_queue(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(require_reviewer),
    db: Session = Depends(get_db),
):
    """Pending and flagged transactions awaiting a decision, oldest first."""
    return TransactionWorkflow(db).review_queue(limit=limit, offset=offset)


@router.get("/{transaction_id}", response_model=TransactionDetailResponse)
def get_transaction(
    transaction_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a transaction with the violations recorded against it."""
    workflow = TransactionWorkflow(db)
    try:
        txn = workflow.get_transaction(transaction_id)
    except ServiceError as e:
        raise to_http_exception(e)
    if not user.is_reviewer and txn.created_by != user.id:
        raise HTTPException(status_code=404, detail=f"Transaction {transaction_id} not found")
    return txn


def workflow_response(result) -> WorkflowResponse:
    return WorkflowResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        analysis=result.analysis,
        warnings=result.warnings,
    )


def _review(action, transaction_id, request, user, db):
    notes = request.notes if request else None
    try:
        result = action(transaction_id, user, notes)
        db.commit()
        return workflow_response(result)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.post("/{transaction_id}/approve", response_model=WorkflowResponse)
def approve_transaction(
    transaction_id: int,
    request: ReviewRequest | None = None,
    user: User = Depends(require_reviewer),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Approve a pending or flagged transaction."""
    return _review(TransactionWorkflow(db, ip_address=ip).approve, transaction_id, request, user, db)


@router.post("/{transaction_id}/reject", response_model=WorkflowResponse)
def reject_transaction(
    transaction_id: int,
    request: ReviewRequest | None = None,
    user: User = Depends(require_reviewer),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Reject a pending or flagged transaction. Notes are required."""
    return _review(TransactionWorkflow(db, ip_address=ip).reject, transaction_id, request, user, db)


@router.post("/{transaction_id}/flag", response_model=WorkflowResponse)
def flag_transaction(
    transaction_id: int,
    request: ReviewRequest | None = None,
    user: User = Depends(require_reviewer),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Flag a pending transaction for elevated scrutiny."""
    return _review(TransactionWorkflow(db, ip_address=ip).flag, transaction_id, request, user, db)


@router.post("/{transaction_id}/analyze", response_model=WorkflowResponse)
def analyze_transaction(
    transaction_id: int,
    user: User = Depends(require_reviewer),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Screen an undecided transaction again against the current rules."""
    workflow = TransactionWorkflow(db, ip_address=ip)
    try:
        result = workflow.rescreen(transaction_id, user)
        db.commit()
        return workflow_response(result)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)
