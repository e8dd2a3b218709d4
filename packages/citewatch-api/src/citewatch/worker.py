"""One-shot monitor sweep for cron-style schedulers.

Usage::

    python -m citewatch.worker [--user-id UUID] [--monitor-id ID]
"""

import argparse
import asyncio
import logging

import httpx

from citewatch.config import get_settings
from citewatch.db.engine import dispose_engine, session_scope
from citewatch.dependencies import build_scheduler
from citewatch.errors import CitewatchError
from citewatch.main import configure_logging
from citewatch.schemas.monitor import CheckChangesResponse
from citewatch.services.cache import TTLCache
from citewatch.services.dedupe import RequestDeduplicator
from citewatch.services.rate_limit import RateLimiter
from citewatch.services.store import MonitorStore

logger = logging.getLogger(__name__)


async def run_sweep(
    user_id: str | None = None,
    monitor_id: str | None = None,
) -> CheckChangesResponse:
    """Check every active monitor (optionally filtered) once."""
    settings = get_settings()
    async with httpx.AsyncClient() as http_client, session_scope() as session:
        scheduler = build_scheduler(
            settings,
            MonitorStore(session),
            http_client,
            TTLCache(max_size=settings.cache_max_size),
            RateLimiter(),
            RequestDeduplicator(),
        )
        return await scheduler.check_monitors(user_id=user_id, monitor_id=monitor_id)


async def _main(args: argparse.Namespace) -> int:
    try:
        summary = await run_sweep(user_id=args.user_id, monitor_id=args.monitor_id)
    except CitewatchError as exc:
        logger.error("Sweep aborted: %s", exc.message)
        return 1
    finally:
        await dispose_engine()

    logger.info(
        "Sweep complete: %d monitor(s) checked, %d change(s) detected",
        summary.monitors_checked,
        summary.total_changes,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one citation monitor sweep")
    parser.add_argument("--user-id", default=None, help="Only check this user's monitors")
    parser.add_argument("--monitor-id", default=None, help="Only check this monitor")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.environment)
    settings.validate_production()

    return asyncio.run(_main(args))


if __name__ == "__main__":
    raise SystemExit(main())
