"""
One-time passcode challenges.

A challenge is keyed by (purpose, identity_key): registration,
MFA login and MFA enrolment never collide. Issuing replaces any
existing challenge for the key. Verification checks, in order:

1. Expiry        -> EXPIRED, challenge destroyed
2. Attempt limit -> EXHAUSTED, challenge destroyed
3. Code          -> MATCHED (challenge consumed) or MISMATCH

Attempt counting and consumption are single conditional
statements, so concurrent guesses can never exceed the limit.
The caller must commit after a failed verify for the counter
to stick.
"""

import enum
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from maker_checker.config import Settings, get_settings
from maker_checker.errors import DependencyError, NotFoundError
from maker_checker.models.enums import OTPPurpose
from maker_checker.models.otp_challenge import OTPChallenge
from maker_checker.services.notification_service import Mailer, otp_message

logger = logging.getLogger(__name__)

CODE_DIGITS = 6


class OTPOutcome(str, enum.Enum):
    MATCHED = "matched"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MISMATCH = "mismatch"
    MISSING = "missing"


@dataclass
class VerifyResult:
    outcome: OTPOutcome
    payload: dict | None = None

    @property
    def matched(self) -> bool:
        return self.outcome == OTPOutcome.MATCHED


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"


class OTPChallengeManager:

    def __init__(
        self,
        db: Session,
        mailer: Mailer | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.mailer = mailer
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self.settings.OTP_TTL_SECONDS

    @property
    def max_attempts(self) -> int:
        return self.settings.OTP_MAX_ATTEMPTS

    def _digest(self, purpose: OTPPurpose, identity_key: str, code: str) -> str:
        message = f"{purpose.value}:{identity_key}:{code}".encode()
        return hmac.new(
            self.settings.SECRET_KEY.encode(), message, hashlib.sha256
        ).hexdigest()

    def _load(self, purpose: OTPPurpose, identity_key: str) -> OTPChallenge | None:
        # Counters are changed by bulk statements; never trust a cached copy
        return self.db.execute(
            select(OTPChallenge)
            .where(
                OTPChallenge.purpose == purpose,
                OTPChallenge.identity_key == identity_key,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _destroy(self, challenge: OTPChallenge):
        self.db.delete(challenge)
        self.db.flush()

    def issue(
        self, purpose: OTPPurpose, identity_key: str, payload: dict | None = None
    ) -> str:
        """
        Create a fresh challenge, replacing any existing one for the key.

        Returns the plain code. Only its digest is stored.
        """
        existing = self._load(purpose, identity_key)
        if existing:
            self._destroy(existing)

        code = generate_code()
        challenge = OTPChallenge(
            purpose=purpose,
            identity_key=identity_key,
            code_digest=self._digest(purpose, identity_key, code),
            expires_at=self.clock() + timedelta(seconds=self.ttl_seconds),
            attempts=0,
            payload=payload,
        )
        self.db.add(challenge)
        self.db.flush()
        logger.info("Issued %s challenge for %s", purpose.value, identity_key)
        return code

    def reissue(self, purpose: OTPPurpose, identity_key: str) -> str:
        """
        Resend: new code, expiry and counter, same payload.

        Raises NotFoundError if there is nothing to resend.
        """
        existing = self._load(purpose, identity_key)
        if not existing:
            raise NotFoundError("No pending verification found. Please start again.")
        return self.issue(purpose, identity_key, existing.payload)

    def pending_payload(self, purpose: OTPPurpose, identity_key: str) -> dict | None:
        """Payload of the live challenge for the key. Raises NotFoundError if none."""
        existing = self._load(purpose, identity_key)
        if not existing:
            raise NotFoundError("No pending verification found. Please start again.")
        return existing.payload

    def invalidate(self, purpose: OTPPurpose, identity_key: str) -> None:
        existing = self._load(purpose, identity_key)
        if existing:
            self._destroy(existing)

    def verify(self, purpose: OTPPurpose, identity_key: str, code: str) -> VerifyResult:
        """Check a code. On MATCHED the payload staged at issue is returned."""
        challenge = self._load(purpose, identity_key)
        if not challenge:
            return VerifyResult(OTPOutcome.MISSING)

        if challenge.is_expired(self.clock()):
            self._destroy(challenge)
            return VerifyResult(OTPOutcome.EXPIRED)

        if challenge.attempts >= self.max_attempts:
            self._destroy(challenge)
            return VerifyResult(OTPOutcome.EXHAUSTED)

        candidate = self._digest(purpose, identity_key, (code or "").strip())
        if hmac.compare_digest(candidate, challenge.code_digest):
            payload = challenge.payload
            # Consume only if no concurrent guess used up the last attempt
            consumed = self.db.execute(
                delete(OTPChallenge)
                .where(
                    OTPChallenge.id == challenge.id,
                    OTPChallenge.attempts < self.max_attempts,
                )
                .execution_options(synchronize_session=False)
            )
            if consumed.rowcount == 1:
                self.db.expunge(challenge)
                return VerifyResult(OTPOutcome.MATCHED, payload)
            self.invalidate(purpose, identity_key)
            return VerifyResult(OTPOutcome.EXHAUSTED)

        counted = self.db.execute(
            update(OTPChallenge)
            .where(
                OTPChallenge.id == challenge.id,
                OTPChallenge.attempts < self.max_attempts,
            )
            .values(attempts=OTPChallenge.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount == 0:
            self.invalidate(purpose, identity_key)
            return VerifyResult(OTPOutcome.EXHAUSTED)
        return VerifyResult(OTPOutcome.MISMATCH)

    # --- Delivery ---

    def _send(self, purpose, identity_key, code, to, first_name):
        if self.mailer is None:
            raise DependencyError("No mailer configured for one-time codes")
        subject, html, text = otp_message(first_name, code, self.ttl_seconds // 60)
        result = self.mailer.send_mail(to, subject, html, text)
        if not result.success:
            self.invalidate(purpose, identity_key)
            raise DependencyError(f"Could not deliver code to {to}: {result.error}")

    def issue_and_send(
        self,
        purpose: OTPPurpose,
        identity_key: str,
        to: str,
        first_name: str,
        payload: dict | None = None,
    ) -> str:
        """Issue a challenge and mail the code. No challenge survives a failed send."""
        code = self.issue(purpose, identity_key, payload)
        self._send(purpose, identity_key, code, to, first_name)
        return code

    def reissue_and_send(
        self, purpose: OTPPurpose, identity_key: str, to: str, first_name: str
    ) -> str:
        code = self.reissue(purpose, identity_key)
        self._send(purpose, identity_key, code, to, first_name)
        return code
