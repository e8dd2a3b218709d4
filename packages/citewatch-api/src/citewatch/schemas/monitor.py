"""Schemas for the SERP monitor control endpoint."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from citewatch.schemas.snapshot import AlertThreshold, Change, ChangeType, Engine, Snapshot

DOMAIN_PATTERN = r"^(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

DEFAULT_ENGINES = [Engine.GOOGLE.value, Engine.BING.value]
DEFAULT_CHANGE_TYPES = [
    ChangeType.CITATION_GAINED.value,
    ChangeType.CITATION_LOST.value,
    ChangeType.POSITION_CHANGED.value,
]


def _split_list(value: Any) -> Any:
    """Accept either a JSON list or a comma-separated string."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


def _dedupe_in_order(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class _ActionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(pattern=UUID_PATTERN)


class CreateMonitorRequest(_ActionRequest):
    """Body for ``create_monitor``."""

    query: str = Field(min_length=1, max_length=300)
    domain: str = Field(max_length=255, pattern=DOMAIN_PATTERN)
    engines: list[Engine] = Field(default_factory=lambda: list(DEFAULT_ENGINES), min_length=1)
    change_types: list[ChangeType] = Field(
        default_factory=lambda: list(DEFAULT_CHANGE_TYPES), min_length=1
    )
    alert_threshold: AlertThreshold = AlertThreshold.IMMEDIATE

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        v = v.replace("<", "").replace(">", "").strip()
        if not v:
            raise ValueError("query must not be blank")
        return v

    @field_validator("domain")
    @classmethod
    def lower_domain(cls, v: str) -> str:
        return v.lower()

    @field_validator("engines", "change_types", mode="before")
    @classmethod
    def split_csv(cls, v: Any) -> Any:
        return _split_list(v)

    @field_validator("engines", "change_types")
    @classmethod
    def unique(cls, v: list) -> list:
        return _dedupe_in_order(v)


class CheckChangesRequest(_ActionRequest):
    """Body for ``check_changes``; omit monitor_id to check every active monitor."""

    monitor_id: str | None = Field(default=None, max_length=36)


class GetAlertsRequest(_ActionRequest):
    """Body for ``get_alerts``."""


class UpdateMonitorRequest(_ActionRequest):
    """Body for ``update_monitor``."""

    monitor_id: str = Field(min_length=1, max_length=36)
    is_active: bool | None = None
    alert_threshold: AlertThreshold | None = None
    change_types: list[ChangeType] | None = Field(default=None, min_length=1)

    @field_validator("change_types", mode="before")
    @classmethod
    def split_csv(cls, v: Any) -> Any:
        return _split_list(v)


class DeleteMonitorRequest(_ActionRequest):
    """Body for ``delete_monitor``."""

    monitor_id: str = Field(min_length=1, max_length=36)


# ── Responses ────────────────────────────────────────────────────────

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MonitorResponse(BaseModel):
    """A monitor as returned to its owner."""

    model_config = _CAMEL

    id: str
    user_id: str
    query: str
    domain: str
    engines: list[str]
    change_types: list[str]
    alert_threshold: str
    is_active: bool
    last_checked: datetime | None = None
    last_snapshots: dict[str, Any] | None = None
    created_at: datetime


class ChangeLogResponse(BaseModel):
    model_config = _CAMEL

    id: str
    monitor_id: str
    engine: str | None = None
    change_type: str
    severity: str
    old_value: Any = None
    new_value: Any = None
    description: str
    impact: str
    detected_at: datetime


class CreateMonitorResponse(BaseModel):
    model_config = _CAMEL

    success: bool = True
    monitor_id: str
    initial_snapshot: Snapshot | None = None
    message: str = "SERP monitor created successfully"


class MonitorCheckResult(BaseModel):
    """Outcome of checking one monitor across its engines."""

    model_config = _CAMEL

    monitor_id: str
    query: str
    domain: str
    changes: int = 0
    details: list[Change] = Field(default_factory=list)
    engines_checked: list[str] = Field(default_factory=list)
    engines_failed: list[str] = Field(default_factory=list)


class CheckChangesResponse(BaseModel):
    model_config = _CAMEL

    success: bool = True
    monitors_checked: int
    total_changes: int
    results: list[MonitorCheckResult]


class AlertsResponse(BaseModel):
    model_config = _CAMEL

    active_monitors: int
    recent_changes: int
    monitors: list[MonitorResponse]
    changes: list[ChangeLogResponse]


class AckResponse(BaseModel):
    success: bool = True
    message: str
