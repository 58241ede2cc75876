"""Injectable time sources."""

from datetime import datetime, timedelta
from typing import Optional

from blockdebt.models.base import ensure_utc, utc_now


class Clock:
    """Source of the current UTC timestamp."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return utc_now()


class ManualClock(Clock):
    """Clock that only moves when told to, for tests and simulations."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._current = ensure_utc(start) if start is not None else utc_now()

    def now(self) -> datetime:
        return self._current

    def set(self, value: datetime) -> None:
        self._current = ensure_utc(value)

    def advance(self, days: float = 0, hours: float = 0, minutes: float = 0) -> datetime:
        """Move forward and return the new time."""
        self._current = self._current + timedelta(days=days, hours=hours, minutes=minutes)
        return self._current
