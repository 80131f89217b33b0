"""Time utility helpers and the clock abstraction used by polling code."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, time, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


def now_utc() -> datetime:
    """Return current timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


class Clock(Protocol):
    """Source of the current time and of suspension between polling attempts."""

    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock backed by ``asyncio.sleep``."""

    def now(self) -> datetime:
        return now_utc()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def parse_iso_datetime(value: str | datetime | None, default: datetime | None = None) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix allowed) into an aware UTC datetime."""
    if value is None or value == "":
        if default is None:
            raise ValueError("Missing required datetime value")
        return default

    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        parsed = value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_time_windows(value: str) -> list[tuple[time, time]]:
    """Parse ``"06:00-09:00,16:30-19:30"`` into a list of (start, end) pairs."""
    windows: list[tuple[time, time]] = []
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        start_raw, sep, end_raw = chunk.partition("-")
        if not sep:
            raise ValueError(f"Invalid time window {chunk!r}")
        windows.append((time.fromisoformat(start_raw.strip()), time.fromisoformat(end_raw.strip())))
    return windows


def in_time_windows(at: datetime, windows: list[tuple[time, time]], tz: tzinfo | str) -> bool:
    """Return True when ``at`` (converted to ``tz``) falls inside any window.

    Windows are half-open, ``start <= t < end``; a window whose end precedes its
    start wraps past midnight.
    """
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    local = at.astimezone(zone).time().replace(tzinfo=None)
    for start, end in windows:
        if start <= end:
            if start <= local < end:
                return True
        elif local >= start or local < end:
            return True
    return False


def last_n_days(base: datetime, days: int) -> tuple[datetime, datetime]:
    """Return the ``(start, end)`` range covering ``days`` days up to ``base``."""
    return base - timedelta(days=days), base
