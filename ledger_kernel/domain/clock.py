"""
Injectable time source.

Services never call ``datetime.now()``.  A movement's ``created_at`` is the
second key of the canonical order, so tests pin time with
DeterministicClock and step it explicitly between writes.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Starts at 2024-01-01 12:00 UTC unless another start is given.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Step one second forward and return the new time."""
        self.advance(1)
        return self._current
