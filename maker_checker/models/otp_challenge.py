"""
One-time passcode challenge model.

Challenges live in the shared database rather than process memory,
so verification works behind any number of workers and survives a
restart. Only an HMAC digest of the code is stored.
"""

from datetime import datetime

from sqlalchemy import (
    String, DateTime, Integer, JSON, UniqueConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from maker_checker.models.base import Base
from maker_checker.models.enums import OTPPurpose, enum_values


class OTPChallenge(Base):
    __tablename__ = "otp_challenges"
    __table_args__ = (
        UniqueConstraint("purpose", "identity_key", name="uq_otp_purpose_identity"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    purpose: Mapped[OTPPurpose] = mapped_column(
        SAEnum(
            OTPPurpose,
            name="otp_purpose_enum",
            create_constraint=True,
            values_callable=enum_values,
        ),
        nullable=False,
    )
    # Lower-cased email for registration, user id for MFA
    identity_key: Mapped[str] = mapped_column(String(255), nullable=False)
    code_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=datetime.utcnow
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def __repr__(self) -> str:
        return f"<OTPChallenge {self.purpose.value}:{self.identity_key}>"
