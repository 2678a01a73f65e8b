"""Injectable wall clock."""

from datetime import UTC, datetime
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Clock backed by the system time, always timezone-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency for the clock; overridden in tests."""
    return system_clock
