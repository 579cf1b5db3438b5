"""
OTP request model for SMS and email one-time passwords.

"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from identity_auth.core.db.models.base import BaseModel
from identity_auth.core.enums import OTPType


class OTPRequest(BaseModel):
    """
    Model for storing OTP requests.

    Codes are stored as HMAC-SHA256 digests. At most one row per
    ``(user_id, otp_type)`` has ``verified=False``: issuing a new code
    flips every earlier unverified row to ``verified=True`` (superseded,
    not approved; ``verified_at`` stays NULL for superseded rows). Rows are
    only deleted by the expiry cleanup sweep.

    Attributes:
        user_id: Identifier of the resident the code belongs to.
        code_hash: HMAC-SHA256 hash of the 6-digit code.
        otp_type: Delivery channel (sms or email).
        contact: Phone number or email address the code was issued for.
        expires_at: When the code stops being accepted.
        attempts: Verification attempts consumed so far.
        verified: True once matched or superseded.
        verified_at: When the code was successfully matched.
    """

    __tablename__ = "otp_requests"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    code_hash: Mapped[str] = mapped_column(
        String(64),  # SHA256 hex digest is 64 characters
        nullable=False,
    )

    otp_type: Mapped[OTPType] = mapped_column(
        Enum(OTPType, native_enum=False, name="otp_type"),
        nullable=False,
    )

    contact: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        # Backs the single-active-OTP rule at the storage level
        Index(
            "uq_otp_requests_active",
            "user_id",
            "otp_type",
            unique=True,
            postgresql_where=text("verified = false"),
        ),
    )


__all__ = ["OTPRequest"]
