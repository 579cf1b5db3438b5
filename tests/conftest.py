"""
Pytest configuration and core fixtures.

Service tests run against in-memory fakes of the CRUD port and a fake
session factory, so they exercise the real lifecycle logic without a
database. Storage-level guarantees are covered by tests/integration, which
run against PostgreSQL when TEST_DATABASE_URL is set. Every fixture is
function-scoped for complete test isolation.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uuid import uuid4

import pytest


def pytest_configure(config):
    """Configure pytest with custom settings."""
    os.environ["ENVIRONMENT"] = "test"

    test_db_url = os.environ.get("TEST_DATABASE_URL")
    if test_db_url:
        os.environ["DATABASE_URL"] = test_db_url

    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (require real database)",
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Session factory
# ============================================================================


class FakeSession:
    """Stand-in for AsyncSession; the in-memory CRUD fakes ignore it."""

    def __init__(self):
        self.committed = False
        self.rolled_back = False


class FakeSessionFactory:
    """Mimics ``async_sessionmaker``: ``factory()`` and ``factory.begin()``."""

    def __init__(self):
        self.sessions: list[FakeSession] = []

    @asynccontextmanager
    async def begin(self):
        session = FakeSession()
        self.sessions.append(session)
        try:
            yield session
        except BaseException:
            session.rolled_back = True
            raise
        session.committed = True

    @asynccontextmanager
    async def __call__(self):
        session = FakeSession()
        self.sessions.append(session)
        yield session


class UnreachableSessionFactory:
    """Session factory whose store refuses connections, like asyncpg does.

    With ``fail_on_commit`` the session opens and the failure surfaces when
    the transaction commits on leaving ``begin()``.
    """

    def __init__(self, fail_on_commit: bool = False):
        self.fail_on_commit = fail_on_commit

    def _refused(self) -> ConnectionRefusedError:
        return ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 1)")

    @asynccontextmanager
    async def begin(self):
        if not self.fail_on_commit:
            raise self._refused()
        yield FakeSession()
        raise self._refused()

    @asynccontextmanager
    async def __call__(self):
        raise self._refused()
        yield  # pragma: no cover


# ============================================================================
# In-memory CRUD fakes
# ============================================================================


class InMemoryOTPDB:
    def __init__(self):
        from identity_auth.core.db.models import OTPRequest

        self.model = OTPRequest
        self.rows = []
        self.locked_scopes: list[str] = []

    async def lock_scope(self, session, user_id, otp_type):
        self.locked_scopes.append(f"otp:{user_id}:{otp_type.value}")

    async def supersede_active(self, session, user_id, otp_type, commit_self=True):
        count = 0
        for row in self.rows:
            if row.user_id == user_id and row.otp_type == otp_type and not row.verified:
                row.verified = True
                count += 1
        return count

    async def create(self, session, data, commit_self=True):
        row = self.model(id=uuid4(), created_at=utcnow(), verified_at=None, **data)
        self.rows.append(row)
        return row

    async def get_active_for_update(self, session, user_id, otp_type):
        active = [
            row
            for row in self.rows
            if row.user_id == user_id and row.otp_type == otp_type and not row.verified
        ]
        if not active:
            return None
        return max(active, key=lambda row: row.created_at)

    async def increment_attempts(self, session, otp, commit_self=True):
        otp.attempts += 1
        return otp

    async def mark_verified(self, session, otp, commit_self=True):
        otp.verified = True
        otp.verified_at = utcnow()
        return otp

    async def delete_expired(self, session, now=None, commit_self=True):
        now = now or utcnow()
        before = len(self.rows)
        self.rows = [row for row in self.rows if row.expires_at >= now]
        return before - len(self.rows)

    def active(self, user_id, otp_type):
        return [
            row
            for row in self.rows
            if row.user_id == user_id and row.otp_type == otp_type and not row.verified
        ]


class InMemoryTokenDB:
    def __init__(self):
        from identity_auth.core.db.models import PartnerToken

        self.model = PartnerToken
        self.rows = []
        self.upsert_calls = 0

    async def lock_pair(self, session, user_id, partner_id):
        return None

    def _pair(self, user_id, partner_id):
        for row in self.rows:
            if row.user_id == user_id and row.partner_id == partner_id:
                return row
        return None

    async def get_active_for_pair(self, session, user_id, partner_id, for_update=True):
        from identity_auth.core.enums import TokenStatus

        row = self._pair(user_id, partner_id)
        if row is not None and row.status == TokenStatus.ACTIVE:
            return row
        return None

    async def get_by_token(self, session, token, partner_id, for_update=True):
        for row in self.rows:
            if row.token == token and row.partner_id == partner_id:
                return row
        return None

    async def record_usage(self, session, token, commit_self=True):
        token.usage_count += 1
        token.last_used_at = utcnow()
        return token

    async def mark_expired(self, session, token, commit_self=True):
        from identity_auth.core.enums import TokenStatus

        token.status = TokenStatus.EXPIRED
        return token

    async def upsert_fresh(
        self,
        session,
        user_id,
        partner_id,
        token,
        expires_at,
        now=None,
        commit_self=True,
    ):
        from identity_auth.core.enums import TokenStatus

        self.upsert_calls += 1
        now = now or utcnow()
        existing = self._pair(user_id, partner_id)
        if existing is not None:
            if existing.status == TokenStatus.ACTIVE and existing.expires_at > now:
                return None
            self.rows.remove(existing)

        row = self.model(
            id=uuid4(),
            token=token,
            user_id=user_id,
            partner_id=partner_id,
            status=TokenStatus.ACTIVE,
            expires_at=expires_at,
            usage_count=0,
            last_used_at=None,
            revoked_at=None,
            revoke_reason=None,
            created_at=now,
        )
        self.rows.append(row)
        return row

    async def revoke_active(self, session, user_id, partner_id, reason=None, commit_self=True):
        from identity_auth.core.enums import TokenStatus

        row = self._pair(user_id, partner_id)
        if row is None or row.status != TokenStatus.ACTIVE:
            return 0
        row.status = TokenStatus.REVOKED
        row.revoked_at = utcnow()
        row.revoke_reason = reason
        return 1

    async def expire_overdue(self, session, now=None, commit_self=True):
        from identity_auth.core.enums import TokenStatus

        now = now or utcnow()
        count = 0
        for row in self.rows:
            if row.status == TokenStatus.ACTIVE and row.expires_at < now:
                row.status = TokenStatus.EXPIRED
                count += 1
        return count

    async def list_for_user(self, session, user_id):
        rows = [row for row in self.rows if row.user_id == user_id]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)


class InMemoryLockDB:
    def __init__(self):
        from identity_auth.core.db.models import AuthLock

        self.model = AuthLock
        self.rows = []

    def _find(self, user_id, auth_type, modality):
        for row in self.rows:
            if (
                row.user_id == user_id
                and row.auth_type == auth_type
                and row.biometric_modality == modality
            ):
                return row
        return None

    async def get_lock(self, session, user_id, auth_type, modality=None, for_update=False):
        return self._find(user_id, auth_type, modality)

    async def set_locked(
        self, session, user_id, auth_type, modality=None, reason=None, commit_self=True
    ):
        row = self._find(user_id, auth_type, modality)
        if row is None:
            row = self.model(
                id=uuid4(),
                created_at=utcnow(),
                user_id=user_id,
                auth_type=auth_type,
                biometric_modality=modality,
            )
            self.rows.append(row)
        row.is_locked = True
        row.locked_at = utcnow()
        row.lock_reason = reason
        return row

    async def set_unlocked(self, session, user_id, auth_type, modality=None, commit_self=True):
        count = 0
        for row in self.rows:
            if row.user_id != user_id or row.auth_type != auth_type or not row.is_locked:
                continue
            if modality is not None and row.biometric_modality != modality:
                continue
            row.is_locked = False
            row.unlocked_at = utcnow()
            count += 1
        return count

    async def list_for_user(self, session, user_id):
        return [row for row in self.rows if row.user_id == user_id]


class InMemoryLogDB:
    def __init__(self):
        from identity_auth.core.db.models import AuthenticationLog

        self.model = AuthenticationLog
        self.rows = []
        self.fail_with: Exception | None = None

    async def append(
        self,
        session,
        user_id,
        auth_type,
        auth_status,
        partner_id=None,
        failure_reason=None,
        commit_self=True,
    ):
        if self.fail_with is not None:
            raise self.fail_with
        row = self.model(
            id=uuid4(),
            created_at=utcnow(),
            user_id=user_id,
            auth_type=auth_type,
            auth_status=auth_status,
            partner_id=partner_id,
            failure_reason=failure_reason,
        )
        self.rows.append(row)
        return row

    async def history(self, session, user_id, limit=50):
        rows = [row for row in self.rows if row.user_id == user_id]
        rows.sort(key=lambda row: row.created_at, reverse=True)
        return rows[:limit]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def unreachable_session_factory():
    return UnreachableSessionFactory()


@pytest.fixture
def commit_failing_session_factory():
    return UnreachableSessionFactory(fail_on_commit=True)


@pytest.fixture
def otp_db():
    return InMemoryOTPDB()


@pytest.fixture
def token_db():
    return InMemoryTokenDB()


@pytest.fixture
def lock_db():
    return InMemoryLockDB()


@pytest.fixture
def log_db():
    return InMemoryLogDB()


@pytest.fixture
def notifier():
    from unittest.mock import AsyncMock

    from identity_auth.core.services.ports import Notifier

    mock = AsyncMock(spec=Notifier)
    mock.send.return_value = None
    return mock


@pytest.fixture
def otp_manager(session_factory, otp_db, notifier):
    from identity_auth.core.services.otp import OTPManager

    return OTPManager(
        session_factory=session_factory,
        otp_db=otp_db,
        notifier=notifier,
        hmac_secret="test-otp-secret",
        timeout=2.0,
    )


@pytest.fixture
def token_issuer(session_factory, token_db):
    from identity_auth.core.services.tokens import TokenIssuer

    return TokenIssuer(session_factory=session_factory, token_db=token_db, timeout=2.0)


@pytest.fixture
def lock_service(session_factory, lock_db):
    from identity_auth.core.services.locks import AuthLockService

    return AuthLockService(session_factory=session_factory, lock_db=lock_db, timeout=2.0)


@pytest.fixture
def on_file_record():
    from identity_auth.core.schemas.auth import DemographicRecord

    return DemographicRecord(
        first_name="Jane",
        last_name="Doe",
        date_of_birth="1990-01-01",
        phone="+254712345678",
        email="jane.doe@example.com",
    )
