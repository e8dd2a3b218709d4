"""FastAPI dependency injection functions."""

import hashlib
import hmac
from collections.abc import AsyncGenerator

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from citewatch.config import Settings, get_settings
from citewatch.db.engine import get_session
from citewatch.errors import AuthenticationError, ProviderError
from citewatch.models.api_key import ApiKey
from citewatch.services.alerting import AlertDispatcher
from citewatch.services.cache import TTLCache
from citewatch.services.dedupe import RequestDeduplicator
from citewatch.services.rate_limit import RateLimiter
from citewatch.services.retry import RetryExecutor
from citewatch.services.scheduler import MonitorScheduler
from citewatch.services.snapshot import SnapshotFetcher
from citewatch.services.store import MonitorStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async for session in get_session():
        yield session


def get_app_settings() -> Settings:
    """Return application settings."""
    return get_settings()


def hash_key(raw_key: str) -> str:
    """Hash an API key with SHA-256."""
    return hashlib.sha256(raw_key.encode()).hexdigest()


async def verify_api_key(
    authorization: str | None = Header(None, description="Bearer <api_key>"),
    db: AsyncSession = Depends(get_db),
) -> ApiKey:
    """Resolve the bearer token to an active, user-scoped API key."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authorization header must use Bearer scheme")

    raw_key = authorization[7:].strip()
    if not raw_key:
        raise AuthenticationError("API key is required")

    key_hash = hash_key(raw_key)
    stmt = (
        select(ApiKey)
        .where(ApiKey.key_hash == key_hash)
        .where(ApiKey.is_active.is_(True))
    )
    result = await db.execute(stmt)
    api_key = result.scalar_one_or_none()

    # Timing-safe comparison to prevent timing side-channel attacks
    if api_key is None or not hmac.compare_digest(api_key.key_hash, key_hash):
        raise AuthenticationError("Invalid or inactive API key")

    return api_key


# ── Process-wide engine components (held on app.state) ──────────────


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_deduplicator(request: Request) -> RequestDeduplicator:
    return request.app.state.deduplicator


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_store(db: AsyncSession = Depends(get_db)) -> MonitorStore:
    return MonitorStore(db)


def build_retry(settings: Settings) -> RetryExecutor:
    """Retry policy for provider calls."""
    return RetryExecutor(
        max_retries=settings.retry_max_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        jitter=settings.retry_jitter,
        deadline=settings.retry_deadline_seconds,
        retry_on=(ProviderError,),
    )


def build_scheduler(
    settings: Settings,
    store: MonitorStore,
    http_client: httpx.AsyncClient,
    cache: TTLCache,
    rate_limiter: RateLimiter,
    deduplicator: RequestDeduplicator,
) -> MonitorScheduler:
    """Wire a scheduler from settings and shared components."""
    fetcher = SnapshotFetcher(settings, http_client, cache, deduplicator, rate_limiter)
    return MonitorScheduler(
        store=store,
        fetcher=fetcher,
        retry=build_retry(settings),
        deduplicator=deduplicator,
        dispatcher=AlertDispatcher.from_settings(settings, store, http_client),
        inter_call_delay=settings.inter_call_delay_seconds,
    )


def get_scheduler(
    store: MonitorStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    cache: TTLCache = Depends(get_cache),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    deduplicator: RequestDeduplicator = Depends(get_deduplicator),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> MonitorScheduler:
    return build_scheduler(settings, store, http_client, cache, rate_limiter, deduplicator)
