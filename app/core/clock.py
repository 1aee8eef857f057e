"""Injectable time source.

Services that stamp or compare request dates take a ``Clock`` so tests can pin
"now" to a known instant. Datetimes are naive UTC, matching what the
``DateTime`` columns store.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a naive UTC datetime."""
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FixedClock(Clock):
    """Clock frozen at a given instant until moved with ``advance``."""

    def __init__(self, current: datetime):
        if current.tzinfo is not None:
            current = current.astimezone(timezone.utc).replace(tzinfo=None)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> None:
        self._current = self._current + delta
