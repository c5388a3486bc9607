"""
Time provider abstraction for deterministic testing

Messages are stamped with their time of recording through a provider, so
tests can pin timestamps and exercise the time-windowed pagination exactly.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze time and advance it second by second.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance_seconds(self, seconds: int) -> None:
        self._current_time += timedelta(seconds=seconds)


def to_unix_seconds(dt: datetime) -> int:
    """
    Whole unix seconds for a datetime (naive values are taken as UTC)

    Floors, so 1969-12-31T23:59:59.5Z is -1, not 0.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - UNIX_EPOCH) // timedelta(seconds=1)


# Global default time provider
default_time_provider: TimeProvider = RealTimeProvider()
