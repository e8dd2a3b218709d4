"""Answer-engine snapshot fetching and normalization.

Queries a SerpApi-compatible search endpoint and turns the raw response into
a :class:`Snapshot`. Raw responses are cached per (engine, query, locale) so
monitors that share a query reuse one provider call, and identical concurrent
calls are coalesced.
"""

import logging
from typing import Any

import httpx

from citewatch.config import Settings
from citewatch.errors import ConfigurationError, ProviderError
from citewatch.schemas.snapshot import CitedSource, Engine, Snapshot
from citewatch.services.cache import TTLCache, make_cache_key
from citewatch.services.dedupe import RequestDeduplicator
from citewatch.services.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def _mentions(text: Any, domain: str) -> bool:
    return isinstance(text, str) and domain.lower() in text.lower()


def _parse_sources(raw_sources: Any) -> list[CitedSource]:
    if not isinstance(raw_sources, list):
        return []
    sources = []
    for raw in raw_sources:
        if not isinstance(raw, dict):
            continue
        sources.append(
            CitedSource(
                title=str(raw.get("title") or ""),
                link=str(raw.get("link") or ""),
                snippet=str(raw.get("snippet") or ""),
            )
        )
    return sources


def _extract_ai_section(payload: dict[str, Any], engine: str) -> tuple[str, list[CitedSource]] | None:
    """Return (answer, sources) from the engine's AI section, or None if absent."""
    if engine == Engine.GOOGLE.value:
        overview = payload.get("ai_overview")
        if not isinstance(overview, dict):
            return None
        return str(overview.get("overview") or ""), _parse_sources(overview.get("sources"))

    if engine == Engine.BING.value:
        answer = payload.get("ai_answer")
        if isinstance(answer, dict):
            return str(answer.get("answer") or ""), _parse_sources(answer.get("sources"))
        answer_box = payload.get("answer_box")
        if isinstance(answer_box, dict):
            text = answer_box.get("answer") or answer_box.get("snippet") or ""
            return str(text), _parse_sources(answer_box.get("links"))
        return None

    raise ValueError(f"Unsupported engine: {engine}")


def find_citation_position(ai_answer: str, sources: list[CitedSource], domain: str) -> int | None:
    """Rank of the first source linking to ``domain``.

    A bare textual mention in the answer counts as a citation ranked after
    every explicit source.
    """
    for index, source in enumerate(sources, start=1):
        if _mentions(source.link, domain):
            return index
    if _mentions(ai_answer, domain):
        return len(sources) + 1
    return None


def normalize_response(
    payload: dict[str, Any],
    *,
    query: str,
    domain: str,
    engine: str,
) -> Snapshot:
    """Build a Snapshot from a raw provider payload. Pure."""
    ai_answer = ""
    sources: list[CitedSource] = []
    citation_position = None

    section = _extract_ai_section(payload, engine)
    if section is not None:
        ai_answer, sources = section
        citation_position = find_citation_position(ai_answer, sources, domain)

    organic_positions = []
    organic = payload.get("organic_results")
    if isinstance(organic, list):
        for index, result in enumerate(organic, start=1):
            if isinstance(result, dict) and _mentions(result.get("link"), domain):
                organic_positions.append(index)

    featured_snippet = None
    featured = payload.get("featured_snippet")
    if isinstance(featured, dict) and _mentions(featured.get("link"), domain):
        featured_snippet = featured

    return Snapshot.capture(
        query=query,
        domain=domain,
        engine=engine,
        ai_answer=ai_answer,
        cited_sources=sources,
        citation_position=citation_position,
        organic_positions=organic_positions,
        featured_snippet=featured_snippet,
    )


class SnapshotFetcher:
    """Fetches and normalizes snapshots from the answer-engine provider."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        cache: TTLCache,
        deduplicator: RequestDeduplicator,
        rate_limiter: RateLimiter,
    ) -> None:
        self.settings = settings
        self.http_client = http_client
        self.cache = cache
        self.deduplicator = deduplicator
        self.rate_limiter = rate_limiter

    async def fetch(
        self,
        query: str,
        domain: str,
        engine: str,
        locale: tuple[str, str] | None = None,
    ) -> Snapshot:
        """Take a snapshot of ``query`` on ``engine`` from ``domain``'s point of view."""
        if engine not in {e.value for e in Engine}:
            raise ValueError(f"Unsupported engine: {engine}")
        gl, hl = locale or (self.settings.serp_locale_gl, self.settings.serp_locale_hl)
        payload = await self._search(query, engine, gl, hl)
        return normalize_response(payload, query=query, domain=domain, engine=engine)

    async def _search(self, query: str, engine: str, gl: str, hl: str) -> dict[str, Any]:
        # The cache key is the exact query text sent to the provider.
        query = query.strip()
        key = make_cache_key("serp", engine, gl, hl, query)
        ttl = self.settings.snapshot_cache_ttl_seconds

        if ttl > 0:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Provider cache hit for %s", key)
                return cached

        async def call() -> dict[str, Any]:
            payload = await self._request(query, engine, gl, hl)
            if ttl > 0:
                self.cache.set(key, payload, ttl)
            return payload

        return await self.deduplicator.dedupe(key, call)

    async def _request(self, query: str, engine: str, gl: str, hl: str) -> dict[str, Any]:
        api_key = self.settings.serpapi_key
        if not api_key:
            raise ConfigurationError("SERPAPI_KEY not configured")

        self.rate_limiter.check(
            f"provider:{engine}",
            self.settings.provider_rate_limit,
            self.settings.provider_rate_window_seconds,
        )

        url = f"{self.settings.serpapi_base_url.rstrip('/')}/search.json"
        params = {"engine": engine, "q": query, "api_key": api_key, "gl": gl, "hl": hl}

        try:
            response = await self.http_client.get(
                url,
                params=params,
                timeout=self.settings.request_timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise ProviderError(f"SERP API request timed out for engine {engine}") from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"SERP API request failed: {exc}") from exc

        if not response.is_success:
            raise ProviderError(
                f"SERP API error: {response.status_code}", status=response.status_code
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("SERP API returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise ProviderError("SERP API returned an unexpected payload")
        return payload
