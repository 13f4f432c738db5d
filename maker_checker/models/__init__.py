"""
Database models package.

All models must be imported here so that Alembic can discover
them through Base.metadata when generating migrations.
"""

from maker_checker.models.base import Base
from maker_checker.models.enums import (
    TransactionType,
    TransactionStatus,
    RuleType,
    Severity,
    UserRole,
    OTPPurpose,
    NotificationType,
    AuditAction,
)
from maker_checker.models.user import User
from maker_checker.models.transaction import Transaction
from maker_checker.models.policy import PolicyRule, PolicyViolation
from maker_checker.models.blacklist import BlacklistEntry
from maker_checker.models.audit_log import AuditLog
from maker_checker.models.otp_challenge import OTPChallenge
from maker_checker.models.notification import Notification

__all__ = [
    "Base",
    "TransactionType",
    "TransactionStatus",
    "RuleType",
    "Severity",
    "UserRole",
    "OTPPurpose",
    "NotificationType",
    "AuditAction",
    "User",
    "Transaction",
    "PolicyRule",
    "PolicyViolation",
    "BlacklistEntry",
    "AuditLog",
    "OTPChallenge",
    "Notification",
]
