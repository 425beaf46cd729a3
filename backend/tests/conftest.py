"""Pytest fixtures for Abacus backend tests."""

from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import abacus.models  # noqa: F401
from abacus.config import Settings, get_settings
from abacus.database import Base, get_db
from abacus.main import app
from abacus.routers.deps import limiter
from abacus.services.identity import IdentityResolver

# Test database URL - uses SQLite for isolation
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def test_settings() -> Settings:
    """Test settings with safe defaults and no provider credentials."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        anthropic_admin_key=None,
        cursor_admin_key=None,
        cursor_page_delay_seconds=0,
        github_token=None,
        github_org=None,
        github_repos=[],
        github_webhook_secret="test-webhook-secret",
        work_email_domain=None,
        cron_secret="test-cron-secret",
        backfill_target_date=date(2025, 1, 1),
        backfill_chunk_days=7,
        backfill_stop_on_empty_days=7,
        debug=True,
    )


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine with the full schema."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def resolver(db_session: AsyncSession) -> IdentityResolver:
    return IdentityResolver(db_session)


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and settings overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def cron_headers(test_settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {test_settings.cron_secret}"}


@pytest.fixture
def sample_datetime() -> datetime:
    """Sample datetime for testing."""
    return datetime(2025, 1, 3, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def sample_usage_report() -> dict[str, Any]:
    """One page of the Claude Code usage report."""
    return {
        "data": [
            {
                "date": "2025-01-02T00:00:00Z",
                "actor": {"type": "user_actor", "email_address": "Dev@Example.com"},
                "model_breakdown": [
                    {
                        "model": "claude-sonnet-4-20250514",
                        "tokens": {
                            "input": 1000,
                            "output": 500,
                            "cache_creation": 200,
                            "cache_read": 3000,
                        },
                        "estimated_cost": {"amount": 250, "currency": "USD"},
                    },
                    {
                        "model": "claude-3-5-haiku-20241022",
                        "tokens": {"input": 1_000_000, "output": 0, "cache_creation": 0, "cache_read": 0},
                    },
                ],
            },
            {
                "date": "2025-01-02T00:00:00Z",
                "actor": {"type": "api_actor", "api_key_name": "ci-key"},
                "model_breakdown": [
                    {
                        "model": "claude-opus-4-5-20251101",
                        "tokens": {"input": 10, "output": 20, "cache_creation": 0, "cache_read": 0},
                    }
                ],
            },
        ],
        "has_more": True,
        "next_page": "page_2",
    }


@pytest.fixture
def sample_usage_events() -> list[dict[str, Any]]:
    """Cursor team usage events."""
    return [
        {
            "timestamp": "1735776000000",
            "userEmail": "Dev@Example.com",
            "model": "claude-4-sonnet-thinking",
            "tokenUsage": {
                "inputTokens": 100,
                "outputTokens": 50,
                "cacheWriteTokens": 0,
                "cacheReadTokens": 400,
                "totalCents": 12,
            },
        },
        {
            "timestamp": "1735779600000",
            "userEmail": "dev@example.com",
            "model": "default",
            "tokenUsage": {"inputTokens": 10, "outputTokens": 5},
        },
        {
            "timestamp": "1735783200000",
            "userEmail": "dev@example.com",
            "model": "gpt-4o",
            "tokenUsage": {"inputTokens": 0, "outputTokens": 0},
        },
    ]


@pytest.fixture
def sample_push_payload() -> dict[str, Any]:
    """GitHub push webhook payload for the default branch."""
    return {
        "ref": "refs/heads/main",
        "repository": {"full_name": "acme/api", "default_branch": "main"},
        "sender": {"login": "devuser", "id": 4242},
        "commits": [
            {
                "id": "a" * 40,
                "message": (
                    "Add usage endpoint\n\n"
                    "Co-Authored-By: Claude Opus 4.5 <noreply@anthropic.com>"
                ),
                "timestamp": "2025-01-02T12:00:00Z",
                "author": {
                    "name": "Dev User",
                    "email": "4242+devuser@users.noreply.github.com",
                    "username": "devuser",
                },
                "stats": {"additions": 10, "deletions": 2},
            },
            {
                "id": "b" * 40,
                "message": "Fix typo in README",
                "timestamp": "2025-01-02T13:00:00Z",
                "author": {"name": "Other", "email": "other@example.com", "username": "other"},
                "additions": 1,
                "deletions": 1,
            },
        ],
    }
