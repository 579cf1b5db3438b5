"""
Partner-specific user token (PSUT) model.

"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from identity_auth.core.db.models.base import BaseModel
from identity_auth.core.enums import TokenStatus


class PartnerToken(BaseModel):
    """
    Stable opaque identifier binding a resident to a relying partner.

    There is one row per ``(user_id, partner_id)`` pair, which makes
    ``INSERT ... ON CONFLICT`` on that pair the issuance primitive.

    Attributes:
        token: The opaque token string handed to the partner.
        user_id: Identifier of the resident.
        partner_id: Identifier of the relying partner.
        status: active, expired or revoked (terminal).
        expires_at: When the binding lapses.
        usage_count: Successful validations and reuses.
        last_used_at: Time of the last successful validation or reuse.
        revoked_at: When the token was revoked.
        revoke_reason: Free-text reason supplied on revocation.
    """

    __tablename__ = "partner_tokens"

    token: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    partner_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    status: Mapped[TokenStatus] = mapped_column(
        Enum(TokenStatus, native_enum=False, name="token_status"),
        default=TokenStatus.ACTIVE,
        nullable=False,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    usage_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    revoke_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "partner_id", name="uq_partner_tokens_pair"),
    )


__all__ = ["PartnerToken"]
