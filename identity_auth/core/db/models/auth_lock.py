from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from identity_auth.core.db.models.base import BaseModel, utcnow
from identity_auth.core.enums import AuthType, BiometricModality


class AuthLock(BaseModel):
    """
    Per-resident switch disabling an authentication method.

    Biometric locks carry a modality; OTP and demographic locks leave it
    NULL and cover the whole auth type.
    """

    __tablename__ = "auth_locks"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    auth_type: Mapped[AuthType] = mapped_column(
        Enum(AuthType, native_enum=False, name="auth_type"),
        nullable=False,
    )

    biometric_modality: Mapped[BiometricModality | None] = mapped_column(
        Enum(BiometricModality, native_enum=False, name="biometric_modality"),
        nullable=True,
    )

    is_locked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )

    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    unlocked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    lock_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "auth_type",
            "biometric_modality",
            name="uq_auth_locks_scope",
        ),
    )


__all__ = ["AuthLock"]
