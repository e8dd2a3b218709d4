"""SERP monitor control endpoint.

A single POST route dispatches on the body's ``action`` field. Every action
requires a bearer API key whose owner matches the body's ``user_id``.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, TypeVar

import pydantic
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from citewatch.config import Settings
from citewatch.dependencies import (
    get_app_settings,
    get_rate_limiter,
    get_scheduler,
    get_store,
    verify_api_key,
)
from citewatch.errors import (
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from citewatch.models.api_key import ApiKey
from citewatch.models.monitor import Monitor
from citewatch.schemas.monitor import (
    AckResponse,
    AlertsResponse,
    ChangeLogResponse,
    CheckChangesRequest,
    CreateMonitorRequest,
    CreateMonitorResponse,
    DeleteMonitorRequest,
    GetAlertsRequest,
    MonitorResponse,
    UpdateMonitorRequest,
)
from citewatch.services.rate_limit import RateLimiter
from citewatch.services.scheduler import MonitorScheduler
from citewatch.services.store import MonitorStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["monitors"])

ActionRequest = TypeVar("ActionRequest", bound=BaseModel)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def enforce_api_rate_limit(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Per-IP admission control for the control endpoint."""
    rate_limiter.check(
        f"api:{_client_ip(request)}",
        settings.api_rate_limit,
        settings.api_rate_window_seconds,
    )


def _parse(model: type[ActionRequest], body: dict[str, Any]) -> ActionRequest:
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(f"{field}: {first['msg']}" if field else first["msg"], field=field)


def _respond(model: BaseModel, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(model.model_dump(mode="json", by_alias=True), status_code=status_code)


@router.post("/serp-monitor")
async def serp_monitor(
    request: Request,
    _: None = Depends(enforce_api_rate_limit),
    api_key: ApiKey = Depends(verify_api_key),
    store: MonitorStore = Depends(get_store),
    scheduler: MonitorScheduler = Depends(get_scheduler),
) -> JSONResponse:
    """Create, check, list, update or delete SERP monitors."""
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    action = body.get("action") or "check_changes"
    handler = _ACTIONS.get(action)
    if handler is None:
        raise ValidationError(f"Unknown action: {action}", field="action")

    # Validate user_id before the ownership check so malformed ids read as 400.
    user_id = _parse(GetAlertsRequest, body).user_id
    if user_id != api_key.user_id:
        raise PermissionDeniedError("API key does not belong to this user")

    return await handler(body, store, scheduler)


async def _create_monitor(
    body: dict[str, Any], store: MonitorStore, scheduler: MonitorScheduler
) -> JSONResponse:
    req = _parse(CreateMonitorRequest, body)
    engines = [engine.value for engine in req.engines]

    snapshot = await scheduler.initial_snapshot(req.query, req.domain, engines[0])

    monitor = Monitor(
        id=str(uuid.uuid4()),
        user_id=req.user_id,
        query=req.query,
        domain=req.domain,
        engines=engines,
        change_types=[change_type.value for change_type in req.change_types],
        alert_threshold=req.alert_threshold.value,
        is_active=True,
        last_snapshots={engines[0]: snapshot.to_storage()},
        last_checked=datetime.now(timezone.utc),
    )
    if not await store.create_monitor(monitor):
        raise PersistenceError("Failed to create monitor")

    logger.info("Created monitor %s for %r on %s", monitor.id, monitor.query, monitor.domain)
    await scheduler.dispatcher.monitor_created(MonitorResponse.model_validate(monitor))

    return _respond(
        CreateMonitorResponse(monitor_id=monitor.id, initial_snapshot=snapshot),
        status_code=status.HTTP_201_CREATED,
    )


async def _check_changes(
    body: dict[str, Any], store: MonitorStore, scheduler: MonitorScheduler
) -> JSONResponse:
    req = _parse(CheckChangesRequest, body)
    result = await scheduler.check_monitors(user_id=req.user_id, monitor_id=req.monitor_id)
    return _respond(result)


async def _get_alerts(
    body: dict[str, Any], store: MonitorStore, scheduler: MonitorScheduler
) -> JSONResponse:
    req = _parse(GetAlertsRequest, body)
    monitors = await store.list_active_monitors(user_id=req.user_id)
    changes = await store.recent_changes([monitor.id for monitor in monitors])
    return _respond(
        AlertsResponse(
            active_monitors=len(monitors),
            recent_changes=len(changes),
            monitors=[MonitorResponse.model_validate(m) for m in monitors],
            changes=[ChangeLogResponse.model_validate(c) for c in changes],
        )
    )


async def _update_monitor(
    body: dict[str, Any], store: MonitorStore, scheduler: MonitorScheduler
) -> JSONResponse:
    req = _parse(UpdateMonitorRequest, body)
    fields = req.model_dump(
        include={"is_active", "alert_threshold", "change_types"},
        exclude_none=True,
        mode="json",
    )
    if not fields:
        raise ValidationError("No updatable fields supplied")

    monitor = await store.get_monitor(req.monitor_id, user_id=req.user_id)
    if monitor is None:
        raise NotFoundError("Monitor not found")

    if not await store.update_monitor(monitor, **fields):
        raise PersistenceError("Failed to update monitor")
    return _respond(AckResponse(message="Monitor updated successfully"))


async def _delete_monitor(
    body: dict[str, Any], store: MonitorStore, scheduler: MonitorScheduler
) -> JSONResponse:
    req = _parse(DeleteMonitorRequest, body)
    monitor = await store.get_monitor(req.monitor_id, user_id=req.user_id)
    if monitor is None:
        raise NotFoundError("Monitor not found")

    if not await store.delete_monitor(monitor):
        raise PersistenceError("Failed to delete monitor")
    logger.info("Deleted monitor %s", req.monitor_id)
    return _respond(AckResponse(message="Monitor deleted successfully"))


_ACTIONS = {
    "create_monitor": _create_monitor,
    "check_changes": _check_changes,
    "get_alerts": _get_alerts,
    "update_monitor": _update_monitor,
    "delete_monitor": _delete_monitor,
}
