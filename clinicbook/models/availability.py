"""Doctor availability and slot models.

A doctor publishes one optional time-of-day window per weekday.
Slots are derived from those windows and never persisted.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Weekday(str, Enum):
    """Days of the week, in datetime.weekday() order."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, day: date) -> "Weekday":
        """Weekday for a calendar date."""
        return list(cls)[day.weekday()]


class DayWindow(BaseModel):
    """Bookable hours for one weekday."""

    model_config = ConfigDict(frozen=True)

    start: time
    end: time
    is_available: bool = True

    @model_validator(mode="after")
    def _start_before_end(self) -> "DayWindow":
        if self.start >= self.end:
            raise ValueError(f"window start {self.start} must be before end {self.end}")
        return self


class WeeklyAvailability(BaseModel):
    """Recurring weekly schedule. Missing days are unbookable."""

    model_config = ConfigDict(frozen=True)

    monday: DayWindow | None = None
    tuesday: DayWindow | None = None
    wednesday: DayWindow | None = None
    thursday: DayWindow | None = None
    friday: DayWindow | None = None
    saturday: DayWindow | None = None
    sunday: DayWindow | None = None

    def for_weekday(self, weekday: Weekday) -> DayWindow | None:
        return getattr(self, weekday.value)


class Slot(BaseModel):
    """A candidate fixed-length booking window."""

    model_config = ConfigDict(frozen=True)

    date: date
    start_time: time
    duration_minutes: int = Field(gt=0)
    available: bool = True

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    def contains(self, instant: datetime) -> bool:
        """Whether instant lies in [start, end)."""
        return self.start <= instant < self.end
