"""Monitor check sweep: fetch, diff, alert, persist.

One sweep walks the selected monitors sequentially and, within a monitor,
its engines sequentially with a fixed pause between provider calls. A failing
engine or monitor is logged and skipped; the rest of the sweep carries on.

Per (monitor, engine) the stored snapshot is only replaced after the new one
has been fetched and diffed, so every diff runs against one linear history.
A whole monitor check (diff, change log, notifications) is coalesced on the
monitor id, so overlapping callers share one result and alerts go out once.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import pydantic

from citewatch.errors import CitewatchError
from citewatch.models.monitor import Monitor
from citewatch.schemas.monitor import CheckChangesResponse, MonitorCheckResult, MonitorResponse
from citewatch.schemas.snapshot import Change, Snapshot
from citewatch.services.alerting import AlertDispatcher
from citewatch.services.dedupe import RequestDeduplicator
from citewatch.services.diff import compare_snapshots
from citewatch.services.retry import RetryExecutor
from citewatch.services.snapshot import SnapshotFetcher
from citewatch.services.store import MonitorStore, stored_snapshot

logger = logging.getLogger(__name__)


class MonitorScheduler:
    def __init__(
        self,
        store: MonitorStore,
        fetcher: SnapshotFetcher,
        retry: RetryExecutor,
        deduplicator: RequestDeduplicator,
        dispatcher: AlertDispatcher,
        inter_call_delay: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.retry = retry
        self.deduplicator = deduplicator
        self.dispatcher = dispatcher
        self.inter_call_delay = inter_call_delay
        self._sleep = sleep
        self._calls_made = 0

    async def _take_snapshot(self, query: str, domain: str, engine: str) -> Snapshot:
        # Courtesy pacing between consecutive provider calls in one sweep.
        if self._calls_made and self.inter_call_delay > 0:
            await self._sleep(self.inter_call_delay)
        self._calls_made += 1
        return await self.retry.run(lambda: self.fetcher.fetch(query, domain, engine))

    async def initial_snapshot(self, query: str, domain: str, engine: str) -> Snapshot:
        """Snapshot used to seed a new monitor before it is stored."""
        return await self._take_snapshot(query, domain, engine)

    async def check_monitors(
        self,
        user_id: str | None = None,
        monitor_id: str | None = None,
    ) -> CheckChangesResponse:
        """Check every active monitor matching the filters."""
        monitors = await self.store.list_active_monitors(user_id=user_id, monitor_id=monitor_id)

        # Plain views are taken up front: a failed write rolls the session
        # back and expires every loaded row.
        views: list[MonitorResponse] = []
        for monitor in monitors:
            try:
                views.append(MonitorResponse.model_validate(monitor))
            except pydantic.ValidationError:
                logger.exception("Skipping unreadable monitor %s", monitor.id)

        results: list[MonitorCheckResult] = []
        for view in views:
            try:
                results.append(await self._check(view))
            except Exception:
                logger.exception("Error checking monitor %s", view.id)

        return CheckChangesResponse(
            monitors_checked=sum(1 for result in results if result.engines_checked),
            total_changes=sum(result.changes for result in results),
            results=results,
        )

    async def check_monitor(self, monitor: Monitor | MonitorResponse) -> MonitorCheckResult:
        if not isinstance(monitor, MonitorResponse):
            monitor = MonitorResponse.model_validate(monitor)
        return await self._check(monitor)

    async def _check(self, view: MonitorResponse) -> MonitorCheckResult:
        return await self.deduplicator.dedupe(f"check:{view.id}", lambda: self._run_check(view))

    async def _run_check(self, view: MonitorResponse) -> MonitorCheckResult:
        result = MonitorCheckResult(monitor_id=view.id, query=view.query, domain=view.domain)
        changes: list[Change] = []

        for engine in view.engines:
            try:
                detected = await self.deduplicator.dedupe(
                    f"check:{view.id}:{engine}",
                    lambda engine=engine: self._check_engine(view, engine),
                )
            except CitewatchError as exc:
                logger.warning("Skipping %s for monitor %s: %s", engine, view.id, exc)
                result.engines_failed.append(engine)
                continue
            except Exception:
                logger.exception("Error checking %s for monitor %s", engine, view.id)
                result.engines_failed.append(engine)
                continue

            result.engines_checked.append(engine)
            changes.extend(detected)

        if changes:
            await self.dispatcher.dispatch(view, changes)

        await self.store.touch_last_checked(view.id)

        result.changes = len(changes)
        result.details = changes
        return result

    async def _check_engine(self, view: MonitorResponse, engine: str) -> list[Change]:
        old = stored_snapshot(view, engine)
        new = await self._take_snapshot(view.query, view.domain, engine)

        if old is None:
            logger.info("Seeding first %s snapshot for monitor %s", engine, view.id)
            await self.store.update_snapshot(view.id, engine, new)
            return []

        changes = compare_snapshots(old, new, view.change_types)
        if changes:
            logger.info(
                "Monitor %s: %d change(s) on %s (%s -> %s)",
                view.id,
                len(changes),
                engine,
                old.checksum,
                new.checksum,
            )
        await self.store.update_snapshot(view.id, engine, new)
        return changes
