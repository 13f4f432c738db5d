"""
Policy rule management endpoints. Admins only.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from maker_checker.api.deps import client_ip, require_roles, to_http_exception
from maker_checker.errors import ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.user import ADMIN_ROLES, REVIEWER_ROLES, User
from maker_checker.schemas.policy import (
    PolicyRuleCreate,
    PolicyRuleMutationResponse,
    PolicyRuleResponse,
    PolicyRuleToggle,
    PolicyRuleUpdate,
)
from maker_checker.services.policy_service import PolicyService

router = APIRouter(prefix="/policy", tags=["Policy"])

require_admin = require_roles(*ADMIN_ROLES)


def _mutation(service: PolicyService, rule) -> PolicyRuleMutationResponse:
    return PolicyRuleMutationResponse(
        rule=PolicyRuleResponse.model_validate(rule),
        warnings=service.warnings,
    )


@router.get("/rules", response_model=list[PolicyRuleResponse])
def list_rules(
    user: User = Depends(require_roles(*REVIEWER_ROLES)),
    db: Session = Depends(get_db),
):
    """List every rule, active or not."""
    return PolicyService(db).list_rules()


@router.post("/rules", response_model=PolicyRuleMutationResponse, status_code=201)
def create_rule(
    request: PolicyRuleCreate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Create a policy rule."""
    service = PolicyService(db, ip)
    try:
        rule = service.create_rule(request, user.id)
        db.commit()
        return _mutation(service, rule)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.patch("/rules/{rule_id}", response_model=PolicyRuleMutationResponse)
def update_rule(
    rule_id: int,
    request: PolicyRuleUpdate,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Edit a rule's name, description or threshold."""
    service = PolicyService(db, ip)
    try:
        rule = service.update_rule(rule_id, request, user.id)
        db.commit()
        return _mutation(service, rule)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)


@router.post("/rules/{rule_id}/toggle", response_model=PolicyRuleMutationResponse)
def toggle_rule(
    rule_id: int,
    request: PolicyRuleToggle,
    user: User = Depends(require_admin),
    db: Session = Depends(get_db),
    ip: str | None = Depends(client_ip),
):
    """Take a rule in or out of screening."""
    service = PolicyService(db, ip)
    try:
        rule = service.set_active(rule_id, request.is_active, user.id)
        db.commit()
        return _mutation(service, rule)
    except ServiceError as e:
        db.rollback()
        raise to_http_exception(e)
