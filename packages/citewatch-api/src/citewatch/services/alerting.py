"""Change alert routing and notification delivery.

Every detected change is written to the change log. Urgent changes (high or
critical) also go out immediately over the push channel; monitors with an
``immediate`` threshold additionally get an email. Notifier payloads are
HMAC-signed; delivery failures are logged and never raised.
"""

import hashlib
import hmac
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from citewatch.config import Settings
from citewatch.schemas.monitor import MonitorResponse
from citewatch.schemas.snapshot import AlertThreshold, Change, Severity
from citewatch.services.store import MonitorStore

logger = logging.getLogger(__name__)


def serialize_payload(payload: dict) -> str:
    return json.dumps(payload, sort_keys=True, default=str)


def sign_payload(payload: dict, secret: str) -> str:
    """Create HMAC-SHA256 signature for a notification payload."""
    return hmac.new(
        secret.encode("utf-8"),
        serialize_payload(payload).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class _SignedPoster:
    """POSTs signed JSON to a configured URL, swallowing delivery failures."""

    kind = "notification"

    def __init__(self, url: str | None, secret: str, http_client: httpx.AsyncClient, timeout: float) -> None:
        self.url = url
        self.secret = secret
        self.http_client = http_client
        self.timeout = timeout

    async def _post(self, event_type: str, payload: dict) -> bool:
        if not self.url:
            logger.debug("No %s URL configured; dropping %s", self.kind, event_type)
            return False

        delivery_id = str(uuid.uuid4())
        headers = {
            "Content-Type": "application/json",
            "X-Citewatch-Signature": sign_payload(payload, self.secret),
            "X-Citewatch-Event": event_type,
            "X-Citewatch-Delivery": delivery_id,
        }

        try:
            response = await self.http_client.post(
                self.url,
                content=serialize_payload(payload),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.error("%s %s to %s timed out", self.kind, delivery_id, self.url)
            return False
        except httpx.RequestError as exc:
            logger.error("%s %s to %s failed: %s", self.kind, delivery_id, self.url, exc)
            return False

        if response.status_code >= 400:
            logger.warning(
                "%s %s to %s returned %d",
                self.kind,
                delivery_id,
                self.url,
                response.status_code,
            )
            return False
        return True


class PushNotifier(_SignedPoster):
    """Low-latency realtime channel addressed by user id."""

    kind = "Push notification"

    async def send(self, user_id: str, notification_type: str, payload: dict) -> bool:
        return await self._post(
            notification_type,
            {
                "user_id": user_id,
                "notification_type": notification_type,
                "payload": payload,
            },
        )


class EmailNotifier(_SignedPoster):
    """Heavier email dispatch for immediate-threshold monitors."""

    kind = "Email alert"

    async def send(self, monitor: MonitorResponse, changes: list[Change]) -> bool:
        payload = {
            "user_id": monitor.user_id,
            "email_type": "serp_alert",
            "subject": f'SERP Alert: {len(changes)} changes detected for "{monitor.query}"',
            "data": {
                "query": monitor.query,
                "domain": monitor.domain,
                "monitorId": monitor.id,
                "changes": [c.model_dump(mode="json", by_alias=True) for c in changes],
            },
        }
        return await self._post("serp_alert", payload)


@dataclass
class DispatchResult:
    logged: bool = False
    pushed: bool = False
    emailed: bool = False
    deferred: bool = False
    urgent: list[Change] = field(default_factory=list)


class AlertDispatcher:
    """Routes a monitor's change set to the change log and notifiers."""

    def __init__(self, store: MonitorStore, push: PushNotifier, email: EmailNotifier) -> None:
        self.store = store
        self.push = push
        self.email = email

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: MonitorStore,
        http_client: httpx.AsyncClient,
    ) -> "AlertDispatcher":
        timeout = settings.notification_timeout_seconds
        secret = settings.notification_secret
        return cls(
            store=store,
            push=PushNotifier(settings.realtime_notify_url, secret, http_client, timeout),
            email=EmailNotifier(settings.email_dispatch_url, secret, http_client, timeout),
        )

    async def dispatch(self, monitor: MonitorResponse, changes: list[Change]) -> DispatchResult:
        result = DispatchResult()
        if not changes:
            return result

        result.logged = await self.store.append_changes(monitor.id, changes)

        critical = [c for c in changes if c.severity == Severity.CRITICAL]
        high = [c for c in changes if c.severity == Severity.HIGH]
        result.urgent = critical + high

        if result.urgent:
            result.pushed = await self.push.send(
                monitor.user_id,
                "serp_alert",
                {
                    "type": "serp_alert",
                    "severity": Severity.CRITICAL.value if critical else Severity.HIGH.value,
                    "data": {
                        "monitorId": monitor.id,
                        "query": monitor.query,
                        "domain": monitor.domain,
                        "changes": [
                            c.model_dump(mode="json", by_alias=True) for c in result.urgent
                        ],
                        "totalChanges": len(changes),
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    },
                },
            )

        if monitor.alert_threshold == AlertThreshold.IMMEDIATE.value:
            if result.urgent:
                result.emailed = await self.email.send(monitor, changes)
        else:
            # TODO: roll hourly/daily monitors into a scheduled digest email.
            result.deferred = True
            logger.info(
                "Monitor %s has %s threshold; email for %d change(s) deferred",
                monitor.id,
                monitor.alert_threshold,
                len(changes),
            )

        return result

    async def monitor_created(self, monitor: MonitorResponse) -> bool:
        return await self.push.send(
            monitor.user_id,
            "monitor_created",
            {
                "type": "monitor_created",
                "data": {
                    "monitorId": monitor.id,
                    "query": monitor.query,
                    "domain": monitor.domain,
                    "message": f'Real-time monitoring started for "{monitor.query}"',
                },
            },
        )
