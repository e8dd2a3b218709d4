"""Persistence for monitors and their change log.

Reads raise PersistenceError on database failure. Writes are best-effort:
a failed write is rolled back, logged and reported as False so an otherwise
successful check is never undone by a storage hiccup. Snapshot overwrites are
keyed by checksum-bearing payloads, so retrying them is safe.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from citewatch.errors import PersistenceError
from citewatch.models.monitor import ChangeLog, Monitor
from citewatch.schemas.snapshot import Change, Snapshot

logger = logging.getLogger(__name__)

RECENT_CHANGES_LIMIT = 50


def stored_snapshot(monitor: Any, engine: str) -> Snapshot | None:
    """Return the last known snapshot for one engine of a monitor."""
    raw = (monitor.last_snapshots or {}).get(engine)
    if raw is None:
        return None
    return Snapshot.model_validate(raw)


class MonitorStore:
    """Async repository over a SQLAlchemy session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── Reads ────────────────────────────────────────────────────────

    async def get_monitor(self, monitor_id: str, user_id: str | None = None) -> Monitor | None:
        stmt = select(Monitor).where(Monitor.id == monitor_id)
        if user_id is not None:
            stmt = stmt.where(Monitor.user_id == user_id)
        return await self._read(lambda: self._scalar_one_or_none(stmt))

    async def list_active_monitors(
        self,
        user_id: str | None = None,
        monitor_id: str | None = None,
    ) -> list[Monitor]:
        stmt = select(Monitor).where(Monitor.is_active.is_(True))
        if user_id is not None:
            stmt = stmt.where(Monitor.user_id == user_id)
        if monitor_id is not None:
            stmt = stmt.where(Monitor.id == monitor_id)
        stmt = stmt.order_by(Monitor.created_at)
        return await self._read(lambda: self._scalars(stmt))

    async def recent_changes(
        self,
        monitor_ids: Iterable[str],
        limit: int = RECENT_CHANGES_LIMIT,
    ) -> list[ChangeLog]:
        ids = list(monitor_ids)
        if not ids:
            return []
        stmt = (
            select(ChangeLog)
            .where(ChangeLog.monitor_id.in_(ids))
            .order_by(ChangeLog.detected_at.desc())
            .limit(limit)
        )
        return await self._read(lambda: self._scalars(stmt))

    # ── Writes ───────────────────────────────────────────────────────

    async def create_monitor(self, monitor: Monitor) -> bool:
        async def write() -> None:
            self.session.add(monitor)

        return await self._write(f"create monitor {monitor.id}", write)

    async def update_monitor(self, monitor: Monitor, **fields: Any) -> bool:
        async def write() -> None:
            for name, value in fields.items():
                setattr(monitor, name, value)

        return await self._write(f"update monitor {monitor.id}", write)

    async def delete_monitor(self, monitor: Monitor) -> bool:
        monitor_id = monitor.id

        async def write() -> None:
            await self.session.execute(delete(ChangeLog).where(ChangeLog.monitor_id == monitor_id))
            await self.session.execute(delete(Monitor).where(Monitor.id == monitor_id))

        return await self._write(f"delete monitor {monitor_id}", write)

    async def update_snapshot(self, monitor_id: str, engine: str, snapshot: Snapshot) -> bool:
        """Replace the stored snapshot for ``engine`` wholesale."""

        async def write() -> None:
            result = await self.session.execute(
                select(Monitor.last_snapshots).where(Monitor.id == monitor_id)
            )
            snapshots = dict(result.scalar_one_or_none() or {})
            snapshots[engine] = snapshot.to_storage()
            await self.session.execute(
                update(Monitor)
                .where(Monitor.id == monitor_id)
                .values(last_snapshots=snapshots, last_checked=datetime.now(timezone.utc))
            )

        return await self._write(f"snapshot update for {monitor_id}/{engine}", write)

    async def touch_last_checked(self, monitor_id: str) -> bool:
        async def write() -> None:
            await self.session.execute(
                update(Monitor)
                .where(Monitor.id == monitor_id)
                .values(last_checked=datetime.now(timezone.utc))
            )

        return await self._write(f"last_checked update for {monitor_id}", write)

    async def append_changes(self, monitor_id: str, changes: Iterable[Change]) -> bool:
        detected_at = datetime.now(timezone.utc)
        rows = [
            ChangeLog(
                monitor_id=monitor_id,
                engine=change.engine,
                change_type=change.type.value,
                severity=change.severity.value,
                old_value=change.old_value,
                new_value=change.new_value,
                description=change.description,
                impact=change.impact,
                detected_at=detected_at,
            )
            for change in changes
        ]
        if not rows:
            return True

        async def write() -> None:
            self.session.add_all(rows)

        return await self._write(f"change log append for {monitor_id}", write)

    # ── Helpers ──────────────────────────────────────────────────────

    async def _scalar_one_or_none(self, stmt):
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _scalars(self, stmt) -> list:
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def _read(self, query: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await query()
        except SQLAlchemyError as exc:
            logger.error("Monitor store read failed: %s", exc)
            raise PersistenceError("Failed to read monitor data") from exc

    async def _write(self, description: str, write: Callable[[], Awaitable[None]]) -> bool:
        # A failed statement only unwinds its own savepoint.
        try:
            async with self.session.begin_nested():
                await write()
        except SQLAlchemyError as exc:
            logger.error("Persistence write failed (%s): %s", description, exc)
            return False

        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("Persistence write failed (%s): %s", description, exc)
            return False
        return True
