"""APScheduler setup and job registration."""

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ma3pay.config import settings
from ma3pay.jobs.wallet_refresh import wallet_refresh

scheduler = AsyncIOScheduler(timezone=settings.timezone)


def register_jobs() -> None:
    """Register all periodic jobs if not already present."""
    if scheduler.get_job("wallet_refresh") is None:
        scheduler.add_job(
            wallet_refresh,
            IntervalTrigger(seconds=settings.wallet_refresh_interval_seconds, timezone=settings.timezone),
            id="wallet_refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
