"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Single source of "now" for the vault.

- Storage partitions (<YYYYMMDD>/) are named from this clock
- Record timestamps are taken from this clock
- Tests pin it to cross day boundaries deterministically

All values are timezone-aware UTC.

============================================================
"""

import threading
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


PARTITION_FORMAT = "%Y%m%d"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClockProtocol(ABC):
    """Interface every clock implements."""

    @abstractmethod
    def now(self) -> datetime:
        """Current UTC datetime."""

    def today(self) -> date:
        return self.now().date()

    def date_folder(self) -> str:
        """Current UTC date as a YYYYMMDD partition name."""
        return self.now().strftime(PARTITION_FORMAT)


class SystemClock(ClockProtocol):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Naive datetimes are taken as UTC.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = _as_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        with self._lock:
            self._time = _as_utc(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move forward; kwargs go to timedelta (minutes, hours, days)."""
        with self._lock:
            self._time += timedelta(seconds=seconds, **kwargs)


_default_clock: Optional[ClockProtocol] = None


def get_clock() -> ClockProtocol:
    """Process-wide default clock (SystemClock)."""
    global _default_clock
    if _default_clock is None:
        _default_clock = SystemClock()
    return _default_clock
