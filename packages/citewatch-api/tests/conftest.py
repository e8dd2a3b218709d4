"""Test fixtures and configuration."""

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from citewatch.config import Settings
from citewatch.db.engine import build_engine
from citewatch.dependencies import get_app_settings, get_db, hash_key
from citewatch.main import create_app
from citewatch.models import ApiKey, Base, Monitor
from citewatch.schemas.snapshot import CitedSource, Snapshot

SERPAPI_BASE = "https://serpapi.test"
PUSH_URL = "https://notify.test/push"
EMAIL_URL = "https://notify.test/email"
RAW_API_KEY = "cw_sk_" + "t" * 40


def google_payload(sources: list[str] | None = None, answer: str = "AI overview text") -> dict:
    """Minimal SerpApi Google response with an AI overview citing ``sources``."""
    return {
        "ai_overview": {
            "overview": answer,
            "sources": [
                {"title": f"Source {i}", "link": link, "snippet": ""}
                for i, link in enumerate(sources or [], start=1)
            ],
        },
        "organic_results": [],
    }


@pytest.fixture
def settings() -> Settings:
    """Settings with a provider key and no pacing, caching or backoff."""
    return Settings(
        environment="development",
        serpapi_key="test-serpapi-key",
        serpapi_base_url=SERPAPI_BASE,
        snapshot_cache_ttl_seconds=0,
        inter_call_delay_seconds=0,
        retry_max_retries=1,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
        retry_jitter=0,
        realtime_notify_url=None,
        email_dispatch_url=None,
        notification_secret="test-notify-secret",
    )


@pytest.fixture
def user_id() -> str:
    return str(uuid.uuid4())


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite engine for tests."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session bound to the test engine."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(session_factory, settings):
    """Application with DB and settings dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_app_settings] = lambda: settings
    yield application
    await application.state.http_client.aclose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client against the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def api_key(db_session: AsyncSession, user_id: str) -> str:
    """Insert an active API key for ``user_id`` and return the raw key."""
    db_session.add(
        ApiKey(
            user_id=user_id,
            key_hash=hash_key(RAW_API_KEY),
            prefix=RAW_API_KEY[:11],
        )
    )
    await db_session.commit()
    return RAW_API_KEY


@pytest.fixture
def auth_headers(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"}


def make_snapshot(
    citation_position: int | None = None,
    ai_answer: str = "answer",
    sources: int = 0,
    engine: str = "google",
    organic_positions: list[int] | None = None,
) -> Snapshot:
    """Snapshot for example.com with ``sources`` generic cited sources."""
    return Snapshot.capture(
        query="best crm",
        domain="example.com",
        engine=engine,
        ai_answer=ai_answer,
        cited_sources=[
            CitedSource(title=f"S{i}", link=f"https://site{i}.test/") for i in range(sources)
        ],
        citation_position=citation_position,
        organic_positions=organic_positions,
    )


@pytest_asyncio.fixture
async def monitor(db_session: AsyncSession, user_id: str) -> Monitor:
    """A stored, active Google-only monitor with no snapshots yet."""
    row = Monitor(
        user_id=user_id,
        query="best crm",
        domain="example.com",
        engines=["google"],
        change_types=["citation_gained", "citation_lost", "position_changed"],
        alert_threshold="immediate",
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(row)
    await db_session.commit()
    return row
