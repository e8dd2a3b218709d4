"""Snapshot and Change value types."""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Engine(str, Enum):
    GOOGLE = "google"
    BING = "bing"


class ChangeType(str, Enum):
    CITATION_GAINED = "citation_gained"
    CITATION_LOST = "citation_lost"
    POSITION_CHANGED = "position_changed"
    AI_ANSWER_CHANGED = "ai_answer_changed"
    NEW_SOURCES_ADDED = "new_sources_added"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertThreshold(str, Enum):
    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"


_VALUE_MODEL_CONFIG = ConfigDict(
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class CitedSource(BaseModel):
    """One source backing an AI answer."""

    model_config = _VALUE_MODEL_CONFIG

    title: str = ""
    link: str = ""
    snippet: str = ""


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def compute_checksum(
    ai_answer: str,
    cited_sources: list[CitedSource],
    organic_positions: list[int],
) -> str:
    """Deterministic digest of the citation-relevant parts of a snapshot.

    Returns the first 16 hex chars of SHA-256 over answer, sources and
    organic positions joined by ``|``. Capture time is deliberately excluded.
    """
    raw = "|".join(
        [
            ai_answer,
            _canonical_json([source.model_dump() for source in cited_sources]),
            _canonical_json(list(organic_positions)),
        ]
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class Snapshot(BaseModel):
    """Immutable point-in-time observation for one (query, domain, engine)."""

    model_config = _VALUE_MODEL_CONFIG

    query: str
    domain: str
    engine: str
    ai_answer: str = ""
    cited_sources: list[CitedSource] = Field(default_factory=list)
    citation_position: int | None = None
    total_sources: int = 0
    organic_positions: list[int] = Field(default_factory=list)
    featured_snippet: dict[str, Any] | None = None
    timestamp: datetime
    checksum: str

    @classmethod
    def capture(
        cls,
        *,
        query: str,
        domain: str,
        engine: str,
        ai_answer: str = "",
        cited_sources: list[CitedSource] | None = None,
        citation_position: int | None = None,
        organic_positions: list[int] | None = None,
        featured_snippet: dict[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> "Snapshot":
        """Build a snapshot, deriving total_sources and the checksum."""
        sources = list(cited_sources or [])
        organic = list(organic_positions or [])
        return cls(
            query=query,
            domain=domain,
            engine=engine,
            ai_answer=ai_answer,
            cited_sources=sources,
            citation_position=citation_position,
            total_sources=len(sources),
            organic_positions=organic,
            featured_snippet=featured_snippet,
            timestamp=timestamp or datetime.now(timezone.utc),
            checksum=compute_checksum(ai_answer, sources, organic),
        )

    @property
    def is_cited(self) -> bool:
        return self.citation_position is not None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Change(BaseModel):
    """One typed, severity-ranked difference between consecutive snapshots."""

    model_config = _VALUE_MODEL_CONFIG

    type: ChangeType
    severity: Severity
    old_value: Any = None
    new_value: Any = None
    description: str
    impact: str
    engine: str | None = None

    @property
    def is_urgent(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)
