"""
Clock -- injectable time source.

Services receive a Clock through their constructor and never call
``datetime.now()`` directly, so every ledger timestamp, request time and
review time can be pinned in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock.  ``now()`` always returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time; the only place the kernel reads real time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()``, ``tick()`` or
    ``set_time()`` moves it.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return (self._fixed_time + self._offset).astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance by one second and return the new time."""
        self.advance(1)
        return self.now()
