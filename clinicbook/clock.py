"""Injectable clocks."""

from collections.abc import Callable
from datetime import datetime, timedelta

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    """Current local time (naive, like every datetime in the core)."""
    return datetime.now()


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        """Move forward by timedelta(**kwargs) and return the new time."""
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time.

    Naive values pass through unchanged; the core compares and stores
    naive local datetimes only.
    """
    if value.utcoffset() is None:
        return value
    return value.astimezone().replace(tzinfo=None)
