"""
CRUD operations for AuthLock model.

"""

from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from identity_auth.core.db.crud.base import BaseDB
from identity_auth.core.db.models.auth_lock import AuthLock
from identity_auth.core.enums import AuthType, BiometricModality


class AuthLockDB(BaseDB[AuthLock]):
    """
    CRUD operations for AuthLock model.

    A lock's scope is ``(user_id, auth_type, biometric_modality)`` where the
    modality is NULL for non-biometric methods.
    """

    def __init__(self):
        """Initialize AuthLockDB with the AuthLock model."""
        super().__init__(model=AuthLock)

    def _scope_conditions(
        self,
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None,
    ) -> list:
        modality_condition = (
            self.model.biometric_modality.is_(None)
            if modality is None
            else self.model.biometric_modality == modality
        )
        return [
            self.model.user_id == user_id,
            self.model.auth_type == auth_type,
            modality_condition,
        ]

    async def get_lock(
        self,
        session: AsyncSession,
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None = None,
        for_update: bool = False,
    ) -> AuthLock | None:
        """
        Retrieve the lock row for an exact scope.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_one_by_conditions(
            session=session,
            conditions=self._scope_conditions(user_id, auth_type, modality),
            for_update=for_update,
        )

    async def set_locked(
        self,
        session: AsyncSession,
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None = None,
        reason: str | None = None,
        commit_self: bool = True,
    ) -> AuthLock:
        """
        Lock a scope, creating its row on first use.

        Takes an advisory lock on the scope so two concurrent lock requests
        cannot both insert a row.

        Raises:
            DatabaseException: If a database error occurs.
        """
        scope_key = f"lock:{user_id}:{auth_type.value}:{modality.value if modality else '-'}"
        await self.acquire_key_lock(session, scope_key)

        now = datetime.now(timezone.utc)
        existing = await self.get_lock(
            session, user_id, auth_type, modality, for_update=True
        )
        if existing is None:
            return await self.create(
                session=session,
                data={
                    "user_id": user_id,
                    "auth_type": auth_type,
                    "biometric_modality": modality,
                    "is_locked": True,
                    "locked_at": now,
                    "lock_reason": reason,
                },
                commit_self=commit_self,
            )

        await self.update_by_conditions(
            session=session,
            conditions=[self.model.id == existing.id],
            updates={"is_locked": True, "locked_at": now, "lock_reason": reason},
            commit_self=commit_self,
        )
        existing.is_locked = True
        existing.locked_at = now
        existing.lock_reason = reason
        return existing

    async def set_unlocked(
        self,
        session: AsyncSession,
        user_id: str,
        auth_type: AuthType,
        modality: BiometricModality | None = None,
        commit_self: bool = True,
    ) -> int:
        """
        Unlock a scope. With no modality, every row of the auth type is unlocked.

        Returns:
            The number of lock rows updated.

        Raises:
            DatabaseException: If a database error occurs.
        """
        conditions = [
            self.model.user_id == user_id,
            self.model.auth_type == auth_type,
            self.model.is_locked.is_(True),
        ]
        if modality is not None:
            conditions.append(self.model.biometric_modality == modality)

        return await self.update_by_conditions(
            session=session,
            conditions=conditions,
            updates={"is_locked": False, "unlocked_at": datetime.now(timezone.utc)},
            commit_self=commit_self,
        )

    async def list_for_user(
        self, session: AsyncSession, user_id: str
    ) -> Sequence[AuthLock]:
        """
        List every lock row of a user, newest first.

        Raises:
            DatabaseException: If a database error occurs.
        """
        return await self.get_all(
            session=session,
            filters=[self.model.user_id == user_id],
            order_by=[self.model.created_at.desc()],
        )


__all__ = ["AuthLockDB"]
