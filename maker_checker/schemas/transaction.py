"""
Pydantic schemas for transaction operations.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from maker_checker.models.enums import TransactionType, TransactionStatus
from maker_checker.schemas.policy import AnalysisResult, ViolationResponse


class TransactionCreate(BaseModel):
    """A maker's submission. Amount positivity is checked by the workflow."""
    transaction_type: TransactionType
    amount: Decimal = Field(decimal_places=4)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    source_account: str = Field(max_length=64)
    destination_account: str = Field(max_length=64)
    description: str | None = Field(default=None, max_length=500)


class ReviewRequest(BaseModel):
    """Checker decision. Notes are mandatory for rejections only."""
    notes: str | None = Field(default=None, max_length=2000)


class TransactionResponse(BaseModel):
    id: int
    external_id: uuid.UUID
    transaction_type: TransactionType
    status: TransactionStatus
    amount: Decimal
    currency: str
    source_account: str
    destination_account: str
    description: str | None
    risk_score: int | None
    created_by: int
    reviewed_by: int | None
    review_notes: str | None
    reviewed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransactionDetailResponse(TransactionResponse):
    violations: list[ViolationResponse] = []


class WorkflowResponse(BaseModel):
    """Result of a workflow step, with any non-fatal warnings."""
    transaction: TransactionResponse
    analysis: AnalysisResult | None = None
    warnings: list[str] = []
