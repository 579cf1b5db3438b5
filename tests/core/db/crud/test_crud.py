"""
Test suite for CRUD classes against a mocked AsyncSession.

Statements are compiled with the PostgreSQL dialect to check the locking
and conflict clauses without a live database.

Run all tests:
    pytest tests/core/db/crud/test_crud.py -v

Run with coverage:
    pytest tests/core/db/crud/test_crud.py --cov=identity_auth.core.db.crud --cov-report=term-missing -v
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from identity_auth.core.db.crud import (
    auth_lock_db,
    auth_log_db,
    otp_request_db,
    partner_token_db,
)
from identity_auth.core.enums import AuthStatus, AuthType, OTPType, TokenStatus
from identity_auth.core.exceptions.types import DatabaseException


def _compiled(session: AsyncMock, call_index: int = -1) -> str:
    stmt = session.execute.call_args_list[call_index].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.fixture
def session():
    mock_session = AsyncMock()
    mock_session.add = MagicMock()
    result = MagicMock()
    result.rowcount = 1
    result.scalars.return_value.first.return_value = None
    result.scalars.return_value.all.return_value = []
    result.scalar_one_or_none.return_value = None
    mock_session.execute.return_value = result
    return mock_session


class TestBaseDB:

    @pytest.mark.asyncio
    async def test_select_for_update(self, session):
        await otp_request_db.get_active_for_update(session, "user-1", OTPType.SMS)

        sql = _compiled(session)
        assert "FOR UPDATE" in sql
        assert "ORDER BY otp_requests.created_at DESC" in sql

    @pytest.mark.asyncio
    async def test_update_commits_or_flushes(self, session):
        await otp_request_db.supersede_active(session, "user-1", OTPType.SMS)
        session.commit.assert_awaited_once()

        await otp_request_db.supersede_active(
            session, "user-1", OTPType.SMS, commit_self=False
        )
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sqlalchemy_error_wrapped(self, session):
        session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        with pytest.raises(DatabaseException):
            await auth_log_db.history(session, "user-1")

    @pytest.mark.asyncio
    async def test_advisory_lock(self, session):
        await otp_request_db.lock_scope(session, "user-1", OTPType.EMAIL)

        sql = _compiled(session)
        assert "pg_advisory_xact_lock" in sql
        assert "hashtext" in sql


class TestOTPRequestDB:

    @pytest.mark.asyncio
    async def test_delete_expired_returns_rowcount(self, session):
        session.execute.return_value.rowcount = 4

        removed = await otp_request_db.delete_expired(session, commit_self=False)

        assert removed == 4
        assert "DELETE FROM otp_requests" in _compiled(session)

    @pytest.mark.asyncio
    async def test_increment_attempts(self, session):
        otp = MagicMock(attempts=1)

        await otp_request_db.increment_attempts(session, otp, commit_self=False)

        assert otp.attempts == 2
        session.flush.assert_awaited_once()


class TestPartnerTokenDB:

    @pytest.mark.asyncio
    async def test_upsert_is_conditional(self, session):
        now = datetime.now(timezone.utc)

        result = await partner_token_db.upsert_fresh(
            session,
            user_id="user-1",
            partner_id="partner-9",
            token="PSUT_x_y",
            expires_at=now + timedelta(days=365),
            now=now,
            commit_self=False,
        )

        assert result is None
        sql = _compiled(session)
        assert "ON CONFLICT (user_id, partner_id) DO UPDATE" in sql
        assert "WHERE partner_tokens.status !=" in sql
        assert "RETURNING" in sql

    @pytest.mark.asyncio
    async def test_revoke_active_sets_status(self, session):
        count = await partner_token_db.revoke_active(
            session, "user-1", "partner-9", "lost", commit_self=False
        )

        assert count == 1
        stmt = session.execute.call_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert TokenStatus.REVOKED in params.values()
        assert "lost" in params.values()

    @pytest.mark.asyncio
    async def test_record_usage(self, session):
        token = MagicMock(usage_count=0, last_used_at=None)

        await partner_token_db.record_usage(session, token, commit_self=False)

        assert token.usage_count == 1
        assert token.last_used_at is not None


class TestAuthLockDB:

    @pytest.mark.asyncio
    async def test_get_lock_matches_null_modality(self, session):
        await auth_lock_db.get_lock(session, "user-1", AuthType.OTP)

        assert "auth_locks.biometric_modality IS NULL" in _compiled(session)

    @pytest.mark.asyncio
    async def test_unlock_all_modalities_omits_modality_filter(self, session):
        await auth_lock_db.set_unlocked(
            session, "user-1", AuthType.BIOMETRIC, commit_self=False
        )

        assert "biometric_modality" not in _compiled(session).split("WHERE", 1)[1]


class TestAuthenticationLogDB:

    @pytest.mark.asyncio
    async def test_append_adds_row(self, session):
        row = await auth_log_db.append(
            session,
            user_id="user-1",
            auth_type=AuthType.OTP,
            auth_status=AuthStatus.FAILED,
            failure_reason="Invalid OTP",
            commit_self=False,
        )

        session.add.assert_called_once_with(row)
        assert row.failure_reason == "Invalid OTP"
        session.refresh.assert_awaited_once_with(row)
