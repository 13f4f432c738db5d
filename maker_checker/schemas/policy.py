"""
Pydantic schemas for policy rules, violations and risk analysis.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from maker_checker.models.enums import RuleType, Severity


# --- Rule Schemas ---

class PolicyRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    rule_type: RuleType
    threshold_value: Decimal | None = None
    is_active: bool = True
    description: str | None = None


class PolicyRuleUpdate(BaseModel):
    """Editable rule fields. The rule type is fixed once created."""
    name: str | None = Field(default=None, min_length=1, max_length=100)
    threshold_value: Decimal | None = None
    description: str | None = None


class PolicyRuleToggle(BaseModel):
    is_active: bool


class PolicyRuleResponse(BaseModel):
    id: int
    name: str
    rule_type: RuleType
    threshold_value: Decimal | None
    is_active: bool
    description: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# --- Violation and Analysis Schemas ---

class ViolationDraft(BaseModel):
    """A violation found by the engine and not yet recorded."""
    transaction_id: int | None
    rule_id: int
    rule_type: RuleType
    violation_details: str
    severity: Severity


class ViolationResponse(BaseModel):
    id: int
    transaction_id: int
    rule_id: int
    violation_details: str
    severity: Severity
    created_at: datetime

    model_config = {"from_attributes": True}


class AnalysisResult(BaseModel):
    violations: list[ViolationDraft] = []
    risk_score: int = Field(default=0, ge=0, le=100)
    recommendations: list[str] = []


class PolicyRuleMutationResponse(BaseModel):
    rule: PolicyRuleResponse
    warnings: list[str] = []
