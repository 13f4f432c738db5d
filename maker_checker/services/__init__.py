"""Business logic services."""

from maker_checker.services.audit_service import AuditLogger
from maker_checker.services.policy_service import PolicyService
from maker_checker.services.blacklist_service import BlacklistService
from maker_checker.services.risk_engine import RiskAnalysisEngine
from maker_checker.services.otp_service import OTPChallengeManager, OTPOutcome
from maker_checker.services.auth_service import AuthService
from maker_checker.services.workflow_service import TransactionWorkflow

__all__ = [
    "AuditLogger",
    "PolicyService",
    "BlacklistService",
    "RiskAnalysisEngine",
    "OTPChallengeManager",
    "OTPOutcome",
    "AuthService",
    "TransactionWorkflow",
]
