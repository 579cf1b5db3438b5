"""
Token Issuer for partner-specific user tokens (PSUT).

A PSUT is an opaque, one-way identifier that lets a relying partner refer to
a resident without learning the resident's identifier. Each
``(user_id, partner_id)`` pair has at most one row; an active, unexpired
token is reused on every issuance and only replaced once it is no longer
live.

Example usage:
    from identity_auth.core.db import AsyncSessionLocal
    from identity_auth.core.services.tokens import TokenIssuer

    issuer = TokenIssuer(AsyncSessionLocal)
    token = await issuer.issue_or_reuse("user-1", "partner-9")
    result = await issuer.validate(token, "partner-9")
    if result.valid:
        print(result.user_id)
"""

from datetime import datetime, timedelta, timezone
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_auth.core.config import settings, token_logger
from identity_auth.core.db.crud import PartnerTokenDB, partner_token_db
from identity_auth.core.db.models import PartnerToken
from identity_auth.core.enums import TokenInvalidReason, TokenStatus
from identity_auth.core.exceptions.types import (
    DatabaseException,
    TokenNotFoundException,
    ValidationException,
)
from identity_auth.core.schemas.auth import TokenValidation
from identity_auth.core.utils import (
    generate_partner_token,
    mask_token,
    run_db_operation,
)


__all__ = ["TokenIssuer"]


class TokenIssuer:
    """Issues, validates, revokes and sweeps partner-specific user tokens."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        token_db: PartnerTokenDB = partner_token_db,
        expiry_days: int | None = None,
        timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self._token_db = token_db
        self.expiry_days = expiry_days or settings.PSUT_EXPIRY_DAYS
        self._timeout = timeout

    async def issue_or_reuse(
        self,
        user_id: str,
        partner_id: str,
        expiry_days: int | None = None,
        timeout: float | None = None,
    ) -> str:
        """
        Return the live token for a user/partner pair, minting one if needed.

        Flow:
            1. Serialise on the pair and lock its active row.
            2. Live token: record usage and return it.
            3. Active but past expiry: flip it to expired.
            4. Mint a token through the conditional upsert. If the upsert
               reports a live row written concurrently, reuse that row.

        Args:
            user_id: The resident's identifier.
            partner_id: The relying partner's identifier.
            expiry_days: Lifetime of a new token; defaults to 365 days.
            timeout: Budget in seconds.

        Returns:
            str: The token string.

        Raises:
            ValidationException: If user_id or partner_id is empty.
            DatabaseException: If the store fails.
            InfrastructureTimeoutException: If the budget is exceeded.
        """
        if not user_id or not partner_id:
            raise ValidationException("user_id and partner_id are required")

        lifetime = timedelta(days=expiry_days or self.expiry_days)

        async def _issue() -> tuple[str, bool]:
            async with self._session_factory.begin() as session:
                await self._token_db.lock_pair(session, user_id, partner_id)
                now = datetime.now(timezone.utc)

                existing = await self._token_db.get_active_for_pair(
                    session, user_id, partner_id, for_update=True
                )
                if existing is not None:
                    if existing.expires_at > now:
                        await self._token_db.record_usage(
                            session, existing, commit_self=False
                        )
                        return existing.token, True
                    await self._token_db.mark_expired(
                        session, existing, commit_self=False
                    )

                stored = await self._token_db.upsert_fresh(
                    session,
                    user_id=user_id,
                    partner_id=partner_id,
                    token=generate_partner_token(user_id, partner_id, now),
                    expires_at=now + lifetime,
                    now=now,
                    commit_self=False,
                )
                if stored is not None:
                    return stored.token, False

                live = await self._token_db.get_active_for_pair(
                    session, user_id, partner_id, for_update=True
                )
                if live is None:
                    raise DatabaseException(
                        "Token upsert affected no row and no live token exists"
                    )
                await self._token_db.record_usage(session, live, commit_self=False)
                return live.token, True

        token, reused = await run_db_operation(
            _issue(), self._budget(timeout), "PSUT issuance"
        )
        token_logger.info(
            f"PSUT {'reused' if reused else 'issued'} for user {user_id}, "
            f"partner {partner_id}: {mask_token(token)}"
        )
        return token

    async def validate(
        self,
        token: str,
        partner_id: str,
        timeout: float | None = None,
    ) -> TokenValidation:
        """
        Validate a token presented by a partner.

        A token issued to another partner is reported as not found. An active
        token past its expiry is flipped to expired as a side effect. The
        user id is only returned for a valid token.

        Returns:
            TokenValidation: Verdict, and the user id or the invalid reason.
        """

        async def _check() -> TokenValidation:
            async with self._session_factory.begin() as session:
                record = await self._token_db.get_by_token(
                    session, token, partner_id, for_update=True
                )
                if record is None:
                    return TokenValidation(
                        valid=False, reason=TokenInvalidReason.NOT_FOUND
                    )

                if record.status != TokenStatus.ACTIVE:
                    return TokenValidation(
                        valid=False,
                        reason=TokenInvalidReason.WRONG_STATUS,
                        status=record.status,
                    )

                if record.expires_at <= datetime.now(timezone.utc):
                    await self._token_db.mark_expired(
                        session, record, commit_self=False
                    )
                    return TokenValidation(
                        valid=False,
                        reason=TokenInvalidReason.EXPIRED,
                        status=TokenStatus.EXPIRED,
                    )

                await self._token_db.record_usage(session, record, commit_self=False)
                return TokenValidation(valid=True, user_id=record.user_id)

        result = await run_db_operation(
            _check(), self._budget(timeout), "PSUT validation"
        )
        if not result.valid:
            token_logger.info(
                f"PSUT {mask_token(token)} rejected for partner {partner_id}: "
                f"{result.reason.value}"
            )
        return result

    async def revoke(
        self,
        user_id: str,
        partner_id: str,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> bool:
        """
        Revoke the active token for a pair. Revocation is terminal.

        Raises:
            TokenNotFoundException: If the pair has no active token.
        """

        async def _revoke() -> int:
            async with self._session_factory.begin() as session:
                return await self._token_db.revoke_active(
                    session, user_id, partner_id, reason, commit_self=False
                )

        revoked = await run_db_operation(
            _revoke(), self._budget(timeout), "PSUT revocation"
        )
        if not revoked:
            raise TokenNotFoundException()

        token_logger.info(
            f"PSUT revoked for user {user_id}, partner {partner_id}"
            + (f" ({reason})" if reason else "")
        )
        return True

    async def sweep_expired(self, timeout: float | None = None) -> int:
        """Flip every active token past its expiry to expired."""

        async def _sweep() -> int:
            async with self._session_factory.begin() as session:
                return await self._token_db.expire_overdue(session, commit_self=False)

        expired = await run_db_operation(_sweep(), self._budget(timeout), "PSUT sweep")
        token_logger.info(f"Expired {expired} partner tokens")
        return expired

    async def list_user_tokens(
        self, user_id: str, timeout: float | None = None
    ) -> Sequence[PartnerToken]:
        async def _list() -> Sequence[PartnerToken]:
            async with self._session_factory() as session:
                return await self._token_db.list_for_user(session, user_id)

        return await run_db_operation(_list(), self._budget(timeout), "PSUT listing")

    def _budget(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout
