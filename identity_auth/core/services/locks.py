"""
Per-user authentication locks.

A resident can lock any of OTP, demographic or biometric authentication.
Biometric locks are scoped to a modality; a lock on one modality does not
affect the others. e-KYC cannot be locked directly.
"""

from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_auth.core.config import auth_logger
from identity_auth.core.db.crud import AuthLockDB, auth_lock_db
from identity_auth.core.db.models import AuthLock
from identity_auth.core.enums import LOCKABLE_AUTH_TYPES, AuthType, BiometricModality
from identity_auth.core.exceptions.types import ValidationException
from identity_auth.core.utils import coerce_enum, run_db_operation


__all__ = ["AuthLockService"]


class AuthLockService:
    """Locks, unlocks and queries authentication locks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lock_db: AuthLockDB = auth_lock_db,
        timeout: float | None = None,
    ):
        self._session_factory = session_factory
        self._lock_db = lock_db
        self._timeout = timeout

    @staticmethod
    def parse_scope(
        auth_type: AuthType | str,
        modality: BiometricModality | str | None,
    ) -> tuple[AuthType, BiometricModality | None]:
        """Coerce raw auth type and modality values into their enums."""
        auth_type = coerce_enum(AuthType, auth_type, "auth_type")
        if modality is not None:
            modality = coerce_enum(BiometricModality, modality, "modality")
        return auth_type, modality

    @staticmethod
    def validate_scope(
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None,
        require_modality: bool = False,
    ) -> None:
        """
        Reject scopes that cannot carry a lock.

        Raises:
            ValidationException: For an empty user id, a non-lockable auth
                type, a modality on a non-biometric type, or a missing
                modality where one is required.
        """
        if not user_id:
            raise ValidationException("user_id is required")
        if auth_type not in LOCKABLE_AUTH_TYPES:
            raise ValidationException(
                f"Authentication type '{auth_type.value}' cannot be locked",
                details={"auth_type": auth_type.value},
            )
        if auth_type != AuthType.BIOMETRIC and modality is not None:
            raise ValidationException(
                "Biometric modality is only valid for biometric locks",
                details={"auth_type": auth_type.value, "modality": modality.value},
            )
        if require_modality and auth_type == AuthType.BIOMETRIC and modality is None:
            raise ValidationException("Biometric modality is required")

    async def lock(
        self,
        user_id: str,
        auth_type: AuthType | str,
        modality: BiometricModality | str | None = None,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> AuthLock:
        """
        Lock an authentication method for a user.

        Locking an already locked scope refreshes ``locked_at`` and the reason.

        Raises:
            ValidationException: If the scope is not lockable or a value
                is not a known auth type or modality.
        """
        auth_type, modality = self.parse_scope(auth_type, modality)
        self.validate_scope(user_id, auth_type, modality, require_modality=True)

        async def _lock() -> AuthLock:
            async with self._session_factory.begin() as session:
                return await self._lock_db.set_locked(
                    session, user_id, auth_type, modality, reason, commit_self=False
                )

        lock = await run_db_operation(_lock(), self._budget(timeout), "Auth lock")
        auth_logger.info(f"{self._label(auth_type, modality)} locked for user {user_id}")
        return lock

    async def unlock(
        self,
        user_id: str,
        auth_type: AuthType | str,
        modality: BiometricModality | str | None = None,
        timeout: float | None = None,
    ) -> int:
        """
        Unlock an authentication method.

        For biometrics, passing no modality unlocks every modality.

        Returns:
            int: The number of lock rows cleared.
        """
        auth_type, modality = self.parse_scope(auth_type, modality)
        self.validate_scope(user_id, auth_type, modality)

        async def _unlock() -> int:
            async with self._session_factory.begin() as session:
                return await self._lock_db.set_unlocked(
                    session, user_id, auth_type, modality, commit_self=False
                )

        cleared = await run_db_operation(
            _unlock(), self._budget(timeout), "Auth unlock"
        )
        auth_logger.info(
            f"{self._label(auth_type, modality)} unlocked for user {user_id} ({cleared} rows)"
        )
        return cleared

    async def is_locked(
        self,
        user_id: str,
        auth_type: AuthType | str,
        modality: BiometricModality | str | None = None,
        timeout: float | None = None,
    ) -> bool:
        """True when the exact scope has a lock row with ``is_locked`` set."""
        auth_type, modality = self.parse_scope(auth_type, modality)
        if auth_type not in LOCKABLE_AUTH_TYPES:
            return False

        async def _read() -> bool:
            async with self._session_factory() as session:
                lock = await self._lock_db.get_lock(
                    session, user_id, auth_type, modality
                )
                return bool(lock and lock.is_locked)

        return await run_db_operation(
            _read(), self._budget(timeout), "Auth lock check"
        )

    async def list_locks(
        self, user_id: str, timeout: float | None = None
    ) -> Sequence[AuthLock]:
        async def _list() -> Sequence[AuthLock]:
            async with self._session_factory() as session:
                return await self._lock_db.list_for_user(session, user_id)

        return await run_db_operation(
            _list(), self._budget(timeout), "Auth lock listing"
        )

    @staticmethod
    def _label(auth_type: AuthType, modality: BiometricModality | None) -> str:
        if modality is None:
            return auth_type.value
        return f"{auth_type.value}/{modality.value}"

    def _budget(self, timeout: float | None) -> float | None:
        return self._timeout if timeout is None else timeout
