from sqlalchemy import Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from identity_auth.core.db.models.base import BaseModel
from identity_auth.core.enums import AuthStatus, AuthType


class AuthenticationLog(BaseModel):
    """Append-only audit row written after every executed authentication attempt."""

    __tablename__ = "authentication_logs"

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    auth_type: Mapped[AuthType] = mapped_column(
        Enum(AuthType, native_enum=False, name="auth_type"),
        nullable=False,
        index=True,
    )

    auth_status: Mapped[AuthStatus] = mapped_column(
        Enum(AuthStatus, native_enum=False, name="auth_status"),
        nullable=False,
        index=True,
    )

    partner_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    failure_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )


__all__ = ["AuthenticationLog"]
