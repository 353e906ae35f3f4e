"""
Pytest configuration and fixtures for Autopilot tests.

Provides:
- Async test database with SQLite
- Test client for API testing
- Factory fixtures for creating test data
- Helpers for faking the automation provider's event stream
"""

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from datetime import timedelta
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from autopilot.config import Settings, get_settings
from autopilot.core.database import get_db
from autopilot.core.datetime_utils import utc_now
from autopilot.core.retry import RetryConfig
from autopilot.dependencies import (
    get_automation_provider,
    get_context_search,
    get_engine_config,
    get_summarizer,
)
from autopilot.engine.config import EngineConfig
from autopilot.engine.executor import RunExecutor
from autopilot.engine.store import RunStore
from autopilot.main import app
from autopilot.models import Base
from autopilot.models.automation_run import AgentKind, AutomationRun, RunStatus, TriggerKind
from autopilot.models.business import Business
from autopilot.models.campaign import Campaign
from autopilot.services.automation_client import BrowserAutomationClient

# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
PROVIDER_BASE_URL = "https://automation.test"


# Override settings for testing
class TestSettings(Settings):
    database_url: str = TEST_DATABASE_URL
    debug: bool = True
    automation_api_key: str = "test-key"
    automation_base_url: str = PROVIDER_BASE_URL
    # LLM and search disabled in tests
    openai_api_key: str = ""
    search_api_key: str = ""


# No backoff sleeps in tests
FAST_RETRY = RetryConfig(max_attempts=2, backoff_base=0, backoff_max=0, jitter=False)


def make_engine_config(**overrides: Any) -> EngineConfig:
    values = {
        "provider_base_url": PROVIDER_BASE_URL,
        "provider_api_key": "test-key",
        "deadline_seconds": 5.0,
        "finalize_retry": FAST_RETRY,
    }
    values.update(overrides)
    return EngineConfig(**values)


# ============================================================================
# Event stream helpers
# ============================================================================


def sse(*payloads: dict[str, Any] | str) -> bytes:
    """Encode payloads as `data: ...` lines. Strings are written verbatim."""
    lines = []
    for payload in payloads:
        body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {body}\n\n")
    return "".join(lines).encode()


def complete_event(result: Any, status: str = "COMPLETED") -> dict[str, Any]:
    return {"type": "COMPLETE", "status": status, "resultJson": result}


def session_event(url: str = "https://replay.test/session/1") -> dict[str, Any]:
    return {"type": "STREAMING_URL", "streamingUrl": url}


class ChunkStream:
    """Async byte iterator that records whether it was closed."""

    def __init__(self, chunks: list[bytes], hang_after: bool = False) -> None:
        self.chunks = list(chunks)
        self.hang_after = hang_after
        self.closed = 0
        self.consumed = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self.consumed < len(self.chunks):
            chunk = self.chunks[self.consumed]
            self.consumed += 1
            await asyncio.sleep(0)
            return chunk
        if self.hang_after:
            await asyncio.sleep(3600)
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed += 1


def split_bytes(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def provider_for(
    handler: Callable[[httpx.Request], httpx.Response],
) -> BrowserAutomationClient:
    """Real provider client talking to an in-process mock transport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BrowserAutomationClient(PROVIDER_BASE_URL, "test-key", client=client)


def stream_handler(body: bytes | list[bytes], status_code: int = 200, requests=None):
    """Mock transport handler answering with an event stream body."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        chunks = body if isinstance(body, list) else [body]
        return httpx.Response(status_code, content=ChunkStream(chunks))

    return handler


# ============================================================================
# Database fixtures
# ============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def run_store(db_session: AsyncSession) -> RunStore:
    return RunStore(db_session, finalize_retry=FAST_RETRY)


@pytest.fixture
def executor_factory(run_store: RunStore):
    """Build a RunExecutor around a mock-transport provider."""

    def _create(
        handler: Callable[[httpx.Request], httpx.Response],
        store: RunStore | None = None,
        **config_overrides: Any,
    ) -> RunExecutor:
        return RunExecutor(
            config=make_engine_config(**config_overrides),
            store=store or run_store,
            provider=provider_for(handler),
        )

    return _create


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client with database and provider overrides."""

    async def override_get_db():
        yield db_session

    def override_get_settings():
        return TestSettings()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.dependency_overrides[get_engine_config] = lambda: make_engine_config()
    app.dependency_overrides[get_summarizer] = lambda: None
    app.dependency_overrides[get_context_search] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def use_provider():
    """Route API runs to a mock-transport provider."""

    def _use(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        app.dependency_overrides[get_automation_provider] = lambda: provider_for(handler)

    return _use


# ============================================================================
# Factory Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def business_factory(db_session: AsyncSession):
    """Factory for creating test businesses."""

    async def _create_business(
        name: str = "Bondi Plumbing",
        industry: str | None = "plumber",
        location: str | None = "Sydney",
        country: str | None = "AU",
        website: str | None = "https://bondiplumbing.example",
        ads_access_token: str | None = "ads-token",
    ) -> Business:
        business = Business(
            id=f"biz-{uuid.uuid4().hex[:8]}",
            user_id="user-1",
            name=name,
            industry=industry,
            location=location,
            country=country,
            website=website,
            ads_access_token=ads_access_token,
        )
        db_session.add(business)
        await db_session.commit()
        return business

    return _create_business


@pytest_asyncio.fixture
async def campaign_factory(db_session: AsyncSession):
    """Factory for creating test campaigns."""

    async def _create_campaign(
        business: Business,
        name: str = "Spring Promo",
        external_campaign_id: str | None = "120200000001",
        status: str = "active",
        launched_hours_ago: float | None = 24 * 7,
    ) -> Campaign:
        launched_at = None
        if launched_hours_ago is not None:
            launched_at = utc_now() - timedelta(hours=launched_hours_ago)
        campaign = Campaign(
            business_id=business.id,
            name=name,
            external_campaign_id=external_campaign_id,
            status=status,
            launched_at=launched_at,
            created_at=launched_at or utc_now(),
        )
        db_session.add(campaign)
        await db_session.commit()
        return campaign

    return _create_campaign


@pytest_asyncio.fixture
async def run_factory(db_session: AsyncSession):
    """Factory for inserting runs directly, bypassing the executor."""

    async def _create_run(
        business_id: str = "biz-1",
        agent_kind: AgentKind = AgentKind.COMPETITOR_RESEARCH,
        status: RunStatus = RunStatus.COMPLETED,
        output: dict | None = None,
        completed_minutes_ago: float = 60,
        started_minutes_ago: float | None = None,
    ) -> AutomationRun:
        now = utc_now()
        started = now - timedelta(minutes=started_minutes_ago or completed_minutes_ago + 1)
        run = AutomationRun(
            business_id=business_id,
            user_id="user-1",
            agent_kind=agent_kind,
            trigger_kind=TriggerKind.SCHEDULED,
            trigger_reason="test",
            input={},
            status=status,
            output=output,
            started_at=started,
            completed_at=(
                None
                if status == RunStatus.RUNNING
                else now - timedelta(minutes=completed_minutes_ago)
            ),
        )
        db_session.add(run)
        await db_session.commit()
        return run

    return _create_run
