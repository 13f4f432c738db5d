"""
Shared enumerations for database models.

Using Python enums mapped to database enums ensures that
only valid values can be stored. An unknown rule type or
transaction status is caught at the database level, not just
in Python validation.
"""

import enum


class TransactionType(str, enum.Enum):
    FUND_TRANSFER = "fund_transfer"
    PAYMENT_APPROVAL = "payment_approval"
    ACCOUNT_CHANGE = "account_change"
    LOAN_APPROVAL = "loan_approval"


class TransactionStatus(str, enum.Enum):
    """Lifecycle of a transaction under dual control."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class RuleType(str, enum.Enum):
    """Kinds of policy rule the risk engine knows how to evaluate."""
    AMOUNT_THRESHOLD = "amount_threshold"
    DUPLICATE_DETECTION = "duplicate_detection"
    BLACKLIST_CHECK = "blacklist_check"
    TIME_BASED = "time_based"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class UserRole(str, enum.Enum):
    MAKER = "maker"
    CHECKER = "checker"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class OTPPurpose(str, enum.Enum):
    """Independent one-time code flows. Each has its own key space."""
    REGISTRATION = "registration"
    MFA_LOGIN = "mfa_login"
    MFA_ENROLL = "mfa_enroll"


class NotificationType(str, enum.Enum):
    """Category shown next to an in-app notification."""
    INFO = "info"
    TRANSACTION = "transaction"
    POLICY = "policy"
    USER = "user"
    SYSTEM = "system"


class AuditAction(str, enum.Enum):
    """Known vocabulary of audit log action codes."""
    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_APPROVED = "TRANSACTION_APPROVED"
    TRANSACTION_REJECTED = "TRANSACTION_REJECTED"
    TRANSACTION_FLAGGED = "TRANSACTION_FLAGGED"
    TRANSACTION_RESCREENED = "TRANSACTION_RESCREENED"
    BLACKLIST_ADDED = "BLACKLIST_ADDED"
    BLACKLIST_UPDATED = "BLACKLIST_UPDATED"
    BLACKLIST_REMOVED = "BLACKLIST_REMOVED"
    POLICY_CREATED = "POLICY_CREATED"
    POLICY_UPDATED = "POLICY_UPDATED"
    USER_CREATED = "USER_CREATED"
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    USER_PROMOTED = "USER_PROMOTED"


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) in database enums."""
    return [member.value for member in enum_cls]
