"""
CRUD operations for OTPRequest model.

This module provides the persistence primitives behind the OTP lifecycle:
superseding the active code, row-locked lookup for verification, attempt
counting, and cleanup of expired rows.
"""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from identity_auth.core.db.crud.base import BaseDB
from identity_auth.core.db.models.otp import OTPRequest
from identity_auth.core.enums import OTPType
from identity_auth.core.exceptions.types import DatabaseException


class OTPRequestDB(BaseDB[OTPRequest]):
    """
    CRUD operations for OTPRequest model.

    Callers run each lifecycle step inside one transaction and pass
    ``commit_self=False``; the session's ``begin()`` block commits.
    """

    def __init__(self):
        """Initialize OTPRequestDB with the OTPRequest model."""
        super().__init__(model=OTPRequest)

    async def lock_scope(
        self, session: AsyncSession, user_id: str, otp_type: OTPType
    ) -> None:
        """Serialise writers for one ``(user_id, otp_type)`` until the transaction ends."""
        await self.acquire_key_lock(session, f"otp:{user_id}:{otp_type.value}")

    async def supersede_active(
        self,
        session: AsyncSession,
        user_id: str,
        otp_type: OTPType,
        commit_self: bool = True,
    ) -> int:
        """
        Mark every unverified OTP for a user and channel as verified.

        This logically invalidates the codes (superseded, not approved) so
        the next insert is the only active one.

        Args:
            session: The async database session.
            user_id: The resident's identifier.
            otp_type: The delivery channel.
            commit_self: Whether to commit the session after updating.

        Returns:
            The number of rows superseded.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.update_by_conditions(
            session=session,
            conditions=[
                self.model.user_id == user_id,
                self.model.otp_type == otp_type,
                self.model.verified.is_(False),
            ],
            updates={"verified": True},
            commit_self=commit_self,
        )

    async def get_active_for_update(
        self,
        session: AsyncSession,
        user_id: str,
        otp_type: OTPType,
    ) -> OTPRequest | None:
        """
        Retrieve the most recent unverified OTP and lock its row.

        The row lock is held until the transaction ends, so concurrent
        verifications of the same code run one after another and each sees
        the attempt count left by the previous one.

        Args:
            session: The async database session.
            user_id: The resident's identifier.
            otp_type: The delivery channel.

        Returns:
            The OTPRequest if one is active, None otherwise.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_one_by_conditions(
            session=session,
            conditions=[
                self.model.user_id == user_id,
                self.model.otp_type == otp_type,
                self.model.verified.is_(False),
            ],
            order_by=[self.model.created_at.desc()],
            for_update=True,
        )

    async def increment_attempts(
        self,
        session: AsyncSession,
        otp: OTPRequest,
        commit_self: bool = True,
    ) -> OTPRequest:
        """
        Increment the attempt counter for an OTP request.

        Args:
            session: The async database session.
            otp: The OTP request to update.
            commit_self: Whether to commit the session after updating.

        Returns:
            The updated OTPRequest.

        Raises:
            DatabaseException: If a database error occurs.
        """
        try:
            otp.attempts += 1
            session.add(otp)
            if commit_self:
                await session.commit()
            else:
                await session.flush()
            return otp
        except Exception as e:
            raise DatabaseException(f"Error incrementing OTP attempts: {str(e)}") from e

    async def mark_verified(
        self,
        session: AsyncSession,
        otp: OTPRequest,
        commit_self: bool = True,
    ) -> OTPRequest:
        """
        Mark an OTP request as successfully verified.

        Args:
            session: The async database session.
            otp: The OTP request to mark.
            commit_self: Whether to commit the session after updating.

        Returns:
            The updated OTPRequest.

        Raises:
            DatabaseException: If a database error occurs.
        """
        try:
            otp.verified = True
            otp.verified_at = datetime.now(timezone.utc)
            session.add(otp)
            if commit_self:
                await session.commit()
            else:
                await session.flush()
            return otp
        except Exception as e:
            raise DatabaseException(f"Error marking OTP as verified: {str(e)}") from e

    async def delete_expired(
        self,
        session: AsyncSession,
        now: datetime | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Hard-delete every OTP request whose expiry has passed, verified or not.

        Args:
            session: The async database session.
            now: Reference time. Defaults to the current UTC time.
            commit_self: Whether to commit the session after deleting.

        Returns:
            The number of rows removed.

        Raises:
            DatabaseException: If a database error occurs.
        """
        now = now or datetime.now(timezone.utc)
        return await self.delete_by_conditions(
            session=session,
            conditions=[self.model.expires_at < now],
            commit_self=commit_self,
        )


__all__ = ["OTPRequestDB"]
