"""
Fixtures for integration tests against a real PostgreSQL database.

Concurrency guarantees (row locks, advisory locks, the partial unique index
and the conditional upsert) only hold in PostgreSQL, so these tests open
real connections. They are skipped unless TEST_DATABASE_URL is set.

Each test gets its own engine. Tables are created on first use and
truncated after every test.
"""

from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


TABLES = ("otp_requests", "partner_tokens", "auth_locks", "authentication_logs")


@pytest.fixture
async def pg_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Provide an engine bound to the test database with the schema in place."""
    from identity_auth.core.config import settings
    from identity_auth.core.db import Base
    import identity_auth.core.db.models  # noqa: F401

    if not settings.TEST_DATABASE_URL:
        pytest.skip("TEST_DATABASE_URL not configured")

    engine = create_async_engine(
        settings.TEST_DATABASE_URL,
        echo=False,
        pool_size=10,
        pool_pre_ping=True,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            table_list = ", ".join(f'"{t}"' for t in TABLES)
            await conn.execute(text(f"TRUNCATE TABLE {table_list}"))
        await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=pg_engine,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def resident_id() -> str:
    return f"resident-{uuid4().hex[:12]}"


@pytest.fixture
def pg_otp_manager(pg_session_factory, notifier):
    from identity_auth.core.services.otp import OTPManager

    return OTPManager(
        session_factory=pg_session_factory,
        notifier=notifier,
        hmac_secret="test-otp-secret",
        timeout=10.0,
    )


@pytest.fixture
def pg_token_issuer(pg_session_factory):
    from identity_auth.core.services.tokens import TokenIssuer

    return TokenIssuer(session_factory=pg_session_factory, timeout=10.0)
