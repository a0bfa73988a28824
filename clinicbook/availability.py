"""Slot generation from a doctor's weekly availability.

Pure functions of their inputs: no I/O and no clock.
"""

from collections.abc import Iterator
from datetime import date, datetime, timedelta

from clinicbook.config import SLOT_MINUTES
from clinicbook.models import DayWindow, Slot, Weekday, WeeklyAvailability


def find_window(availability: WeeklyAvailability | None, day: date) -> DayWindow | None:
    """Return the bookable window for a date, or None if the doctor is off."""
    if availability is None:
        return None
    window = availability.for_weekday(Weekday.of(day))
    if window is None or not window.is_available:
        return None
    return window


class SlotSequence:
    """Lazy, restartable sequence of slots for one day.

    Each iteration walks the window again from the start, so the same
    object can be consumed any number of times.
    """

    def __init__(self, day: date, window: DayWindow | None, slot_minutes: int):
        self.day = day
        self.window = window
        self.slot_minutes = slot_minutes

    def __iter__(self) -> Iterator[Slot]:
        if self.window is None:
            return
        step = timedelta(minutes=self.slot_minutes)
        current = datetime.combine(self.day, self.window.start)
        end = datetime.combine(self.day, self.window.end)
        # The last slot must end at or before the window end
        while current + step <= end:
            yield Slot(
                date=self.day,
                start_time=current.time(),
                duration_minutes=self.slot_minutes,
            )
            current += step

    def __len__(self) -> int:
        if self.window is None:
            return 0
        start = datetime.combine(self.day, self.window.start)
        end = datetime.combine(self.day, self.window.end)
        return int((end - start) // timedelta(minutes=self.slot_minutes))

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return f"SlotSequence(day={self.day}, slots={len(self)})"


def generate_slots(
    availability: WeeklyAvailability | None,
    day: date,
    slot_minutes: int = SLOT_MINUTES,
) -> SlotSequence:
    """Generate fixed-length slots for a date.

    Args:
        availability: Doctor's weekly schedule
        day: Calendar date to generate slots for
        slot_minutes: Length of each slot

    Returns:
        SlotSequence, empty when the day is missing or marked unavailable

    Raises:
        ValueError: If slot_minutes is not positive
    """
    if slot_minutes <= 0:
        raise ValueError(f"slot_minutes must be positive, got {slot_minutes}")
    return SlotSequence(day, find_window(availability, day), slot_minutes)


def generate_slot_range(
    availability: WeeklyAvailability | None,
    start_day: date,
    days: int = 7,
    slot_minutes: int = SLOT_MINUTES,
) -> dict[date, SlotSequence]:
    """Slots for each of `days` consecutive dates from start_day.

    Every date is present; days off map to an empty SlotSequence.

    Raises:
        ValueError: If days or slot_minutes is not positive
    """
    if days <= 0:
        raise ValueError(f"days must be positive, got {days}")
    return {
        day: generate_slots(availability, day, slot_minutes)
        for day in (start_day + timedelta(days=offset) for offset in range(days))
    }


def covering_slot(
    availability: WeeklyAvailability | None,
    start: datetime,
    duration: int,
    slot_minutes: int = SLOT_MINUTES,
) -> Slot | None:
    """Find the generated slot that contains a requested start time.

    The whole appointment [start, start + duration) must also end by the
    day's window end.

    Returns:
        The containing Slot, or None if the request is outside availability
    """
    slots = generate_slots(availability, start.date(), slot_minutes)
    window = slots.window
    if window is None:
        return None
    if start + timedelta(minutes=duration) > datetime.combine(start.date(), window.end):
        return None
    for slot in slots:
        if slot.contains(start):
            return slot
    return None
