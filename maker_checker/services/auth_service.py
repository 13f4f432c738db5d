"""
Identity flows: registration, login with optional MFA, MFA
enrolment, password changes, privileged user creation and the
superadmin bootstrap.

Every flow that needs proof of mailbox ownership goes through
OTPChallengeManager. A code that does not match for any reason is
reported as the same SecurityError; the specific outcome is only
logged here.
"""

import logging
import re
import secrets
from dataclasses import dataclass

from passlib.context import CryptContext
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from maker_checker.config import Settings, get_settings
from maker_checker.errors import (
    ConflictError,
    CredentialsError,
    DependencyError,
    NotFoundError,
    SecurityError,
    ValidationError,
)
from maker_checker.models.enums import AuditAction, OTPPurpose, UserRole
from maker_checker.models.user import User
from maker_checker.services.audit_service import (
    AUDIT_WRITE_WARNING,
    AuditLogger,
    snapshot,
)
from maker_checker.services.notification_service import Mailer, credentials_message
from maker_checker.services.otp_service import OTPChallengeManager, VerifyResult

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Roles a superadmin may hand out; makers self-register
PRIVILEGED_ROLES = frozenset({UserRole.CHECKER, UserRole.ADMIN})

USER_AUDIT_FIELDS = ["email", "first_name", "last_name", "role"]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class LoginResult:
    user: User
    mfa_required: bool

    @property
    def session_granted(self) -> bool:
        return not self.mfa_required


class AuthService:

    def __init__(
        self,
        db: Session,
        mailer: Mailer,
        settings: Settings | None = None,
        otp: OTPChallengeManager | None = None,
        ip_address: str | None = None,
    ):
        self.db = db
        self.mailer = mailer
        self.settings = settings or get_settings()
        self.otp = otp or OTPChallengeManager(db, mailer, self.settings)
        self.audit = AuditLogger(db, ip_address)
        self.warnings: list[str] = []

    def _audit(self, actor_id, action, user, old_values=None, new_values=None):
        entry = self.audit.record(
            actor_id, action, "user", user.id,
            old_values=old_values,
            new_values=new_values,
        )
        if entry is None:
            self.warnings.append(AUDIT_WRITE_WARNING)

    def _require_match(self, result: VerifyResult, purpose: OTPPurpose, identity_key: str):
        if not result.matched:
            logger.warning(
                "%s verification for %s failed: %s",
                purpose.value, identity_key, result.outcome.value,
            )
            raise SecurityError(f"Code rejected: {result.outcome.value}")

    def _validate_password(self, password: str, label: str = "Password"):
        if len(password) < self.settings.PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"{label} must be at least {self.settings.PASSWORD_MIN_LENGTH} characters"
            )

    def _validate_email(self, email: str) -> str:
        normalized = normalize_email(email)
        if not EMAIL_PATTERN.match(normalized):
            raise ValidationError("Invalid email format")
        return normalized

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.execute(
            select(User).where(User.email == normalize_email(email))
        ).scalar_one_or_none()

    # --- Registration ---

    def start_registration(
        self, email: str, first_name: str, last_name: str, password: str
    ) -> int:
        """
        Stage a maker registration and mail the verification code.

        Nothing is created until the code is verified.
        Returns the code lifetime in seconds.
        """
        email = self._validate_email(email)
        self._validate_password(password)
        if self.get_user_by_email(email):
            raise ConflictError("An account with this email already exists")

        payload = {
            "first_name": first_name.strip(),
            "last_name": last_name.strip(),
            "password_hash": hash_password(password),
        }
        self.otp.issue_and_send(
            OTPPurpose.REGISTRATION, email, email, payload["first_name"], payload
        )
        return self.otp.ttl_seconds

    def resend_registration_code(self, email: str) -> int:
        email = self._validate_email(email)
        staged = self.otp.pending_payload(OTPPurpose.REGISTRATION, email) or {}
        self.otp.reissue_and_send(
            OTPPurpose.REGISTRATION, email, email, staged.get("first_name", "there")
        )
        return self.otp.ttl_seconds

    def complete_registration(self, email: str, code: str) -> User:
        """Create the maker account once the emailed code matches."""
        email = self._validate_email(email)
        result = self.otp.verify(OTPPurpose.REGISTRATION, email, code)
        self._require_match(result, OTPPurpose.REGISTRATION, email)

        # Someone may have registered the address while the code was out
        if self.get_user_by_email(email):
            raise ConflictError("An account with this email already exists")

        staged = result.payload or {}
        user = User(
            email=email,
            first_name=staged["first_name"],
            last_name=staged["last_name"],
            password_hash=staged["password_hash"],
            role=UserRole.MAKER,
            email_verified=True,
        )
        self.db.add(user)
        self.db.flush()

        self._audit(
            user.id, AuditAction.USER_REGISTERED, user,
            new_values=snapshot(user, USER_AUDIT_FIELDS),
        )
        logger.info("User %s registered", user.id)
        return user

    # --- Login ---

    def authenticate(self, email: str, password: str) -> LoginResult:
        """
        First login factor.

        With MFA enabled no session is granted yet: an mfa_login code
        is mailed and complete_mfa_login() is the final gate.
        """
        user = self.get_user_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            raise CredentialsError("Bad credentials")
        if not user.is_active:
            raise CredentialsError(f"Account {user.id} is disabled")

        if user.mfa_enabled:
            self.otp.issue_and_send(
                OTPPurpose.MFA_LOGIN, str(user.id), user.email, user.first_name
            )
            return LoginResult(user=user, mfa_required=True)

        self._audit(user.id, AuditAction.USER_LOGIN, user, new_values={"mfa": False})
        return LoginResult(user=user, mfa_required=False)

    def complete_mfa_login(self, user_id: int, code: str) -> User:
        result = self.otp.verify(OTPPurpose.MFA_LOGIN, str(user_id), code)
        self._require_match(result, OTPPurpose.MFA_LOGIN, str(user_id))

        user = self.get_user(user_id)
        self._audit(user.id, AuditAction.USER_LOGIN, user, new_values={"mfa": True})
        return user

    # --- MFA enrolment ---

    def send_mfa_enrollment_code(self, user: User) -> int:
        if user.mfa_enabled:
            raise ConflictError("Two-factor authentication is already enabled")
        self.otp.issue_and_send(
            OTPPurpose.MFA_ENROLL, str(user.id), user.email, user.first_name
        )
        return self.otp.ttl_seconds

    def enable_mfa(self, user: User, code: str) -> User:
        result = self.otp.verify(OTPPurpose.MFA_ENROLL, str(user.id), code)
        self._require_match(result, OTPPurpose.MFA_ENROLL, str(user.id))

        user.mfa_enabled = True
        self.db.flush()
        self._audit(
            user.id, AuditAction.MFA_ENABLED, user,
            old_values={"mfa_enabled": False},
            new_values={"mfa_enabled": True},
        )
        return user

    def disable_mfa(self, user: User) -> User:
        if not user.mfa_enabled:
            raise ConflictError("Two-factor authentication is not enabled")
        user.mfa_enabled = False
        self.db.flush()
        self._audit(
            user.id, AuditAction.MFA_DISABLED, user,
            old_values={"mfa_enabled": True},
            new_values={"mfa_enabled": False},
        )
        return user

    # --- Password ---

    def change_password(
        self, user: User, current_password: str, new_password: str
    ) -> User:
        """Replace the password of a signed-in user who knows the current one."""
        self._validate_password(new_password, "New password")
        if current_password == new_password:
            raise ValidationError("New password must be different from current password")
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        self.db.flush()
        # Never put hashes in the trail
        self._audit(user.id, AuditAction.PASSWORD_CHANGED, user)
        logger.info("User %s changed their password", user.id)
        return user

    # --- Privileged users ---

    def create_privileged_user(
        self,
        admin: User,
        email: str,
        first_name: str,
        last_name: str,
        role: UserRole,
    ) -> User:
        """
        Create a checker or admin and mail them a temporary password.

        The credentials email goes out first; if it cannot be
        delivered no account is created.
        """
        if admin.role != UserRole.SUPERADMIN:
            raise ConflictError("Only a superadmin can create privileged users")
        if role not in PRIVILEGED_ROLES:
            raise ValidationError("Role must be checker or admin")

        email = self._validate_email(email)
        if self.get_user_by_email(email):
            raise ConflictError("An account with this email already exists")

        temporary_password = secrets.token_urlsafe(12)
        full_name = f"{first_name} {last_name}"
        subject, html, text = credentials_message(
            full_name, email, role.value, temporary_password, self.settings.LOGIN_URL
        )
        sent = self.mailer.send_mail(email, subject, html, text)
        if not sent.success:
            raise DependencyError(f"Credentials email to {email} failed: {sent.error}")

        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=hash_password(temporary_password),
            role=role,
            email_verified=True,
        )
        self.db.add(user)
        self.db.flush()

        self._audit(
            admin.id, AuditAction.USER_CREATED, user,
            new_values=snapshot(user, USER_AUDIT_FIELDS),
        )
        logger.info("User %s created with role %s by %s", user.id, role.value, admin.id)
        return user

    def list_users(
        self,
        role: UserRole | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[User], int]:
        """Users newest first, one page at a time, with the total match count."""
        query = select(User)
        if role is not None:
            query = query.where(User.role == role)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            ))

        total = self.db.execute(
            select(func.count()).select_from(query.subquery())
        ).scalar_one()
        users = self.db.execute(
            query.order_by(User.created_at.desc(), User.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return list(users), total

    def seed_superadmin(
        self, email: str, first_name: str, last_name: str, password: str
    ) -> tuple[User, bool]:
        """
        Bootstrap the first superadmin.

        Creates the account, or promotes an existing one and leaves
        its password alone. Returns the user and whether it was
        created. There is no acting user, so the audit actor is empty.
        """
        email = self._validate_email(email)
        existing = self.get_user_by_email(email)

        if existing is not None:
            old_values = snapshot(existing, USER_AUDIT_FIELDS)
            existing.role = UserRole.SUPERADMIN
            existing.first_name = first_name
            existing.last_name = last_name
            existing.is_active = True
            self.db.flush()
            self._audit(
                None, AuditAction.USER_PROMOTED, existing,
                old_values=old_values,
                new_values=snapshot(existing, USER_AUDIT_FIELDS),
            )
            logger.info("User %s promoted to superadmin", existing.id)
            return existing, False

        self._validate_password(password)
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=hash_password(password),
            role=UserRole.SUPERADMIN,
            email_verified=True,
        )
        self.db.add(user)
        self.db.flush()
        self._audit(
            None, AuditAction.USER_CREATED, user,
            new_values=snapshot(user, USER_AUDIT_FIELDS),
        )
        logger.info("Superadmin %s created", user.id)
        return user, True
