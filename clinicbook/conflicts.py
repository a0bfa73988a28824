"""Overlap detection between a candidate interval and live appointments."""

from collections.abc import Iterable
from datetime import datetime, timedelta

from clinicbook.models import LIVE_STATUSES, Appointment


def intervals_overlap(
    start_a: datetime,
    minutes_a: int,
    start_b: datetime,
    minutes_b: int,
) -> bool:
    """Half-open overlap test: touching endpoints do not overlap."""
    end_a = start_a + timedelta(minutes=minutes_a)
    end_b = start_b + timedelta(minutes=minutes_b)
    return start_a < end_b and start_b < end_a


def find_conflicts(
    doctor_id: str,
    candidate_start: datetime,
    candidate_duration: int,
    existing: Iterable[Appointment],
    exclude_id: str | None = None,
) -> list[Appointment]:
    """Return the live appointments of a doctor that overlap the candidate.

    Args:
        doctor_id: Doctor whose calendar is checked
        candidate_start: Requested start
        candidate_duration: Requested length in minutes
        existing: Appointments to check against (any doctor, any status)
        exclude_id: Appointment to ignore, e.g. the one being rescheduled

    Returns:
        Conflicting appointments, in input order
    """
    return [
        appt
        for appt in existing
        if appt.doctor_id == doctor_id
        and appt.status in LIVE_STATUSES
        and appt.appointment_id != exclude_id
        and intervals_overlap(
            candidate_start, candidate_duration, appt.date_time, appt.duration
        )
    ]


def has_conflict(
    doctor_id: str,
    candidate_start: datetime,
    candidate_duration: int,
    existing: Iterable[Appointment],
    exclude_id: str | None = None,
) -> bool:
    """Whether the candidate overlaps any live appointment of the doctor."""
    return bool(
        find_conflicts(
            doctor_id, candidate_start, candidate_duration, existing, exclude_id
        )
    )
