"""
OTP Manager for one-time password issuance and verification.

This module handles the OTP lifecycle for SMS and email channels:
- Generation with supersession of the previous active code
- Dispatch through the Notifier port
- Verification with a hard attempt cap and expiry
- Cleanup of expired rows

Each step runs in its own transaction. Generation serialises on the
``(user_id, otp_type)`` scope; verification locks the active row with
``SELECT ... FOR UPDATE`` so concurrent attempts are counted one by one.

Example usage:
    from identity_auth.core.db import AsyncSessionLocal
    from identity_auth.core.services.otp import OTPManager
    from identity_auth.core.services.ports import LoggingNotifier

    manager = OTPManager(AsyncSessionLocal, notifier=LoggingNotifier())
    code = await manager.generate("user-1", OTPType.SMS, "+254712345678")
    await manager.dispatch("+254712345678", code, OTPType.SMS)
    ok = await manager.verify("user-1", code, OTPType.SMS)
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_auth.core.config import otp_logger, settings
from identity_auth.core.db.crud import OTPRequestDB, otp_request_db
from identity_auth.core.enums import OTPType
from identity_auth.core.exceptions.types import (
    AppException,
    NotificationException,
    ValidationException,
)
from identity_auth.core.services.ports import LoggingNotifier, Notifier
from identity_auth.core.utils import (
    coerce_enum,
    generate_otp_code,
    hmac_hash_otp,
    hmac_verify_otp,
    mask_contact,
    run_db_operation,
    with_timeout,
)


__all__ = ["OTPManager"]


class OTPManager:
    """
    Issues and verifies one-time passwords.

    Attributes:
        expiry_minutes: Lifetime of a generated code.
        max_attempts: Verification attempts allowed per code.
        code_length: Number of digits per code.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        otp_db: OTPRequestDB = otp_request_db,
        notifier: Notifier | None = None,
        expiry_minutes: int | None = None,
        max_attempts: int | None = None,
        code_length: int | None = None,
        hmac_secret: str | None = None,
        timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self._otp_db = otp_db
        self._notifier = notifier or LoggingNotifier()
        self.expiry_minutes = expiry_minutes or settings.OTP_EXPIRY_MINUTES
        self.max_attempts = max_attempts or settings.OTP_MAX_ATTEMPTS
        self.code_length = code_length or settings.OTP_LENGTH
        self._hmac_secret = hmac_secret or settings.OTP_HMAC_SECRET
        self._timeout = timeout

    @property
    def expires_in(self) -> int:
        """Code lifetime in seconds."""
        return self.expiry_minutes * 60

    async def generate(
        self,
        user_id: str,
        otp_type: OTPType | str,
        contact: str,
        timeout: float | None = None,
    ) -> str:
        """
        Generate a new OTP, superseding any active one for the same channel.

        The previous unverified codes are flipped to verified and the new row
        is inserted in the same transaction, so at most one code per
        ``(user_id, otp_type)`` is ever active.

        Args:
            user_id: The resident's identifier.
            otp_type: Delivery channel (sms or email).
            contact: Phone number or email address the code is sent to.
            timeout: Budget in seconds; defaults to the manager's timeout.

        Returns:
            str: The plain code, for dispatch only. It is never stored.

        Raises:
            ValidationException: If user_id or contact is empty, or otp_type is not
                a known channel.
            DatabaseException: If the store fails.
            InfrastructureTimeoutException: If the budget is exceeded.
        """
        otp_type = coerce_enum(OTPType, otp_type, "otp_type")
        if not user_id:
            raise ValidationException("user_id is required")
        if not contact:
            raise ValidationException("contact is required")

        code = generate_otp_code(self.code_length)
        code_hash = hmac_hash_otp(code, self._hmac_secret)
        expires_at = datetime.now(timezone.utc) + timedelta(
            minutes=self.expiry_minutes
        )

        async def _store() -> int:
            async with self._session_factory.begin() as session:
                await self._otp_db.lock_scope(session, user_id, otp_type)
                superseded = await self._otp_db.supersede_active(
                    session, user_id, otp_type, commit_self=False
                )
                await self._otp_db.create(
                    session=session,
                    data={
                        "user_id": user_id,
                        "code_hash": code_hash,
                        "otp_type": otp_type,
                        "contact": contact,
                        "expires_at": expires_at,
                        "attempts": 0,
                        "verified": False,
                    },
                    commit_self=False,
                )
                return superseded

        superseded = await run_db_operation(
            _store(), self._budget(timeout), "OTP generation"
        )
        otp_logger.info(
            f"OTP generated for user {user_id} via {otp_type.value} "
            f"to {mask_contact(contact)} (superseded {superseded})"
        )
        return code

    async def dispatch(
        self,
        contact: str,
        code: str,
        channel: OTPType | str,
        timeout: float | None = None,
    ) -> None:
        """
        Hand a generated code to the notifier.

        A failed dispatch does not roll back the stored OTP; the caller
        retries by generating a new code.

        Raises:
            ValidationException: If channel is not a known channel.
            NotificationException: If the transport fails.
            InfrastructureTimeoutException: If the budget is exceeded.
        """
        channel = coerce_enum(OTPType, channel, "channel")
        try:
            await with_timeout(
                self._notifier.send(channel, contact, code),
                self._budget(timeout),
                "OTP dispatch",
            )
        except AppException:
            raise
        except Exception as e:
            otp_logger.error(
                f"OTP dispatch via {channel.value} to {mask_contact(contact)} failed: {str(e)}"
            )
            raise NotificationException(
                message=f"Failed to send OTP via {channel.value}",
                details={"channel": channel.value},
            ) from e

        otp_logger.info(f"OTP sent via {channel.value} to {mask_contact(contact)}")

    async def verify(
        self,
        user_id: str,
        code: str,
        otp_type: OTPType | str,
        timeout: float | None = None,
    ) -> bool:
        """
        Verify a submitted code against the active OTP.

        Returns False when there is no active code, the code has expired, or
        the attempt cap is already reached. Otherwise one attempt is consumed
        before comparing, so a correct code on the attempt after the cap is
        still rejected.

        Args:
            user_id: The resident's identifier.
            code: The submitted code.
            otp_type: Delivery channel the code was issued on.
            timeout: Budget in seconds; defaults to the manager's timeout.

        Returns:
            bool: True if the code matched and is now consumed.

        Raises:
            ValidationException: If otp_type is not a known channel.
            DatabaseException: If the store fails.
            InfrastructureTimeoutException: If the budget is exceeded.
        """
        otp_type = coerce_enum(OTPType, otp_type, "otp_type")

        async def _check() -> bool:
            async with self._session_factory.begin() as session:
                otp = await self._otp_db.get_active_for_update(
                    session, user_id, otp_type
                )
                if otp is None:
                    otp_logger.info(f"No active OTP for user {user_id} via {otp_type.value}")
                    return False

                if otp.expires_at < datetime.now(timezone.utc):
                    otp_logger.info(f"Expired OTP presented for user {user_id}")
                    return False

                if otp.attempts >= self.max_attempts:
                    otp_logger.warning(
                        f"OTP attempt cap reached for user {user_id} via {otp_type.value}"
                    )
                    return False

                await self._otp_db.increment_attempts(session, otp, commit_self=False)

                if not hmac_verify_otp(code, otp.code_hash, self._hmac_secret):
                    otp_logger.info(
                        f"OTP mismatch for user {user_id} "
                        f"(attempt {otp.attempts}/{self.max_attempts})"
                    )
                    return False

                await self._otp_db.mark_verified(session, otp, commit_self=False)
                otp_logger.info(f"OTP verified for user {user_id} via {otp_type.value}")
                return True

        return await run_db_operation(
            _check(), self._budget(timeout), "OTP verification"
        )

    async def cleanup(self, timeout: float | None = None) -> int:
        """
        Delete every OTP whose expiry has passed, verified or not.

        Returns:
            int: The number of rows removed.
        """

        async def _delete() -> int:
            async with self._session_factory.begin() as session:
                return await self._otp_db.delete_expired(session, commit_self=False)

        removed = await run_db_operation(
            _delete(), self._budget(timeout), "OTP cleanup"
        )
        otp_logger.info(f"Cleaned up {removed} expired OTP requests")
        return removed

    def _budget(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout
