from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from identity_auth.core.db.crud.base import BaseDB
from identity_auth.core.db.models.auth_log import AuthenticationLog
from identity_auth.core.enums import AuthStatus, AuthType


class AuthenticationLogDB(BaseDB[AuthenticationLog]):
    """Append-only access to the authentication audit trail."""

    def __init__(self):
        super().__init__(model=AuthenticationLog)

    async def append(
        self,
        session: AsyncSession,
        user_id: str,
        auth_type: AuthType,
        auth_status: AuthStatus,
        partner_id: str | None = None,
        failure_reason: str | None = None,
        commit_self: bool = True,
    ) -> AuthenticationLog:
        """Write one audit row."""
        return await self.create(
            session=session,
            data={
                "user_id": user_id,
                "auth_type": auth_type,
                "auth_status": auth_status,
                "partner_id": partner_id,
                "failure_reason": failure_reason,
            },
            commit_self=commit_self,
        )

    async def history(
        self, session: AsyncSession, user_id: str, limit: int = 50
    ) -> Sequence[AuthenticationLog]:
        """Most recent audit rows for a user, newest first."""
        return await self.get_all(
            session=session,
            filters=[self.model.user_id == user_id],
            order_by=[self.model.created_at.desc()],
            limit=limit,
        )


__all__ = ["AuthenticationLogDB"]
