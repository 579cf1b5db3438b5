"""
CRUD operations for PartnerToken model.

This module provides the persistence primitives behind PSUT issuance,
validation, revocation and the expiry sweep.
"""

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import or_
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_auth.core.db.crud.base import BaseDB
from identity_auth.core.db.models.partner_token import PartnerToken
from identity_auth.core.enums import TokenStatus
from identity_auth.core.exceptions.types import DatabaseException


class PartnerTokenDB(BaseDB[PartnerToken]):
    """
    CRUD operations for PartnerToken model.

    Provides pair-scoped locking, a conditional upsert that never replaces
    a live token, usage tracking, and bulk status transitions.
    """

    def __init__(self):
        """Initialize PartnerTokenDB with the PartnerToken model."""
        super().__init__(model=PartnerToken)

    async def lock_pair(
        self, session: AsyncSession, user_id: str, partner_id: str
    ) -> None:
        """Serialise issuance for one ``(user_id, partner_id)`` until the transaction ends."""
        await self.acquire_key_lock(session, f"psut:{user_id}:{partner_id}")

    async def get_active_for_pair(
        self,
        session: AsyncSession,
        user_id: str,
        partner_id: str,
        for_update: bool = True,
    ) -> PartnerToken | None:
        """
        Retrieve the active token for a user/partner pair, optionally row-locked.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                self.model.user_id == user_id,
                self.model.partner_id == partner_id,
                self.model.status == TokenStatus.ACTIVE,
            ],
            for_update=for_update,
        )

    async def get_by_token(
        self,
        session: AsyncSession,
        token: str,
        partner_id: str,
        for_update: bool = True,
    ) -> PartnerToken | None:
        """
        Retrieve a token issued to the given partner.

        A token presented by a different partner is treated as unknown.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                self.model.token == token,
                self.model.partner_id == partner_id,
            ],
            for_update=for_update,
        )

    async def record_usage(
        self,
        session: AsyncSession,
        token: PartnerToken,
        commit_self: bool = True,
    ) -> PartnerToken:
        """
        Increment usage_count and stamp last_used_at.

        Raises:
            DatabaseException: If a database error occurs.
        """
        try:
            token.usage_count += 1
            token.last_used_at = datetime.now(timezone.utc)
            session.add(token)
            if commit_self:
                await session.commit()
            else:
                await session.flush()
            return token
        except Exception as e:
            raise DatabaseException(f"Error recording token usage: {str(e)}") from e

    async def mark_expired(
        self,
        session: AsyncSession,
        token: PartnerToken,
        commit_self: bool = True,
    ) -> PartnerToken:
        """
        Flip an active token to expired.

        Raises:
            DatabaseException: If a database error occurs.
        """
        try:
            token.status = TokenStatus.EXPIRED
            session.add(token)
            if commit_self:
                await session.commit()
            else:
                await session.flush()
            return token
        except Exception as e:
            raise DatabaseException(f"Error expiring token: {str(e)}") from e

    async def upsert_fresh(
        self,
        session: AsyncSession,
        user_id: str,
        partner_id: str,
        token: str,
        expires_at: datetime,
        now: datetime | None = None,
        commit_self: bool = True,
    ) -> PartnerToken | None:
        """
        Insert a new active token for the pair, replacing a non-live row.

        Runs ``INSERT ... ON CONFLICT (user_id, partner_id) DO UPDATE ... WHERE``
        the existing row is not a live active token. When a concurrent request
        already stored a live token the statement affects nothing and None is
        returned, so the caller can reuse that token instead of creating a
        second one.

        Args:
            session: The async database session.
            user_id: The resident's identifier.
            partner_id: The relying partner's identifier.
            token: The freshly generated token string.
            expires_at: Expiry of the new binding.
            now: Reference time. Defaults to the current UTC time.
            commit_self: Whether to commit after the operation.

        Returns:
            The stored PartnerToken, or None if a live token already exists.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = now or datetime.now(timezone.utc)
        values = {
            "token": token,
            "user_id": user_id,
            "partner_id": partner_id,
            "status": TokenStatus.ACTIVE,
            "expires_at": expires_at,
            "usage_count": 0,
            "last_used_at": None,
            "revoked_at": None,
            "revoke_reason": None,
            "created_at": now,
        }
        try:
            insert_stmt = pg_insert(self.model).values(**values)
            stmt = (
                insert_stmt.on_conflict_do_update(
                    index_elements=[self.model.user_id, self.model.partner_id],
                    set_={
                        k: getattr(insert_stmt.excluded, k)
                        for k in values
                        if k not in ("user_id", "partner_id")
                    },
                    where=or_(
                        self.model.status != TokenStatus.ACTIVE,
                        self.model.expires_at <= now,
                    ),
                )
                .returning(self.model)
                .execution_options(populate_existing=True)
            )
            result = await session.execute(stmt)
            instance = result.scalar_one_or_none()

            if commit_self:
                await session.commit()
            else:
                await session.flush()

            return instance
        except SQLAlchemyError as e:
            raise DatabaseException(f"Error upserting PartnerToken: {str(e)}") from e

    async def revoke_active(
        self,
        session: AsyncSession,
        user_id: str,
        partner_id: str,
        reason: str | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Revoke the active token for a pair.

        Returns:
            The number of tokens revoked (0 or 1).

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.user_id == user_id,
                self.model.partner_id == partner_id,
                self.model.status == TokenStatus.ACTIVE,
            ],
            updates={
                "status": TokenStatus.REVOKED,
                "revoked_at": datetime.now(timezone.utc),
                "revoke_reason": reason,
            },
            commit_self=commit_self,
        )

    async def expire_overdue(
        self,
        session: AsyncSession,
        now: datetime | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Flip every active token past its expiry to expired.

        Returns:
            The number of tokens expired.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = now or datetime.now(timezone.utc)
        return await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.status == TokenStatus.ACTIVE,
                self.model.expires_at < now,
            ],
            updates={"status": TokenStatus.EXPIRED},
            commit_self=commit_self,
        )

    async def list_for_user(
        self, session: AsyncSession, user_id: str
    ) -> Sequence[PartnerToken]:
        """
        List every token bound to a user, newest first.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_all(
            session=session,
            filters=[self.model.user_id == user_id],
            order_by=[self.model.created_at.desc()],
        )


__all__ = ["PartnerTokenDB"]
