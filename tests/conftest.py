"""Shared test fixtures for clinicbook tests."""

from datetime import date, datetime, time

import pytest

from clinicbook.clock import FixedClock
from clinicbook.directory import InMemoryDirectory
from clinicbook.models import (
    ApprovalAuthority,
    DayWindow,
    Doctor,
    Patient,
    SchedulingSettings,
    WeeklyAvailability,
)
from clinicbook.notifications import OutboxDispatcher
from clinicbook.service import SchedulingService
from clinicbook.storage import InMemoryAppointmentStore

# Wednesday; the Monday below is five days later
NOW = datetime(2024, 1, 10, 9, 0)
MONDAY = date(2024, 1, 15)
MONDAY_10AM = datetime(2024, 1, 15, 10, 0)


@pytest.fixture
def clock() -> FixedClock:
    """Clock pinned to NOW."""
    return FixedClock(NOW)


@pytest.fixture
def weekly_availability() -> WeeklyAvailability:
    """Monday 09-17, Wednesday 09-12, Tuesday switched off."""
    return WeeklyAvailability(
        monday=DayWindow(start=time(9, 0), end=time(17, 0)),
        tuesday=DayWindow(start=time(9, 0), end=time(12, 0), is_available=False),
        wednesday=DayWindow(start=time(9, 0), end=time(12, 0)),
    )


@pytest.fixture
def doctor(weekly_availability) -> Doctor:
    return Doctor(
        id="DOC001",
        name="Dr. Smith",
        email="smith@clinic.example",
        specialization="General Practice",
        consultation_fee=120.0,
        availability=weekly_availability,
    )


@pytest.fixture
def patient() -> Patient:
    return Patient(id="PAT001", name="Jane Doe", email="jane@example.com")


@pytest.fixture
def authority() -> ApprovalAuthority:
    return ApprovalAuthority(id="MGR001", name="Alex Manager", department="Outpatients")


@pytest.fixture
def directory(doctor, patient, authority) -> InMemoryDirectory:
    """Directory with one doctor, two patients and one approval authority."""
    return InMemoryDirectory(
        patients=[patient, Patient(id="PAT002", name="John Roe")],
        doctors=[doctor],
        authorities=[authority],
    )


@pytest.fixture
def settings() -> SchedulingSettings:
    """Settings pinned independently of the environment."""
    return SchedulingSettings(
        slot_minutes=30,
        default_duration=30,
        allowed_durations=(15, 30, 45, 60, 90, 120),
        max_reschedules=3,
        refund_window_hours=24,
        store_timeout=1.0,
        notify_timeout=0.5,
    )


@pytest.fixture
def store() -> InMemoryAppointmentStore:
    return InMemoryAppointmentStore()


@pytest.fixture
def outbox() -> OutboxDispatcher:
    return OutboxDispatcher()


@pytest.fixture
def service(store, directory, outbox, settings, clock) -> SchedulingService:
    """Service on the in-memory store, recording notifications in the outbox."""
    return SchedulingService(
        store=store,
        directory=directory,
        dispatcher=outbox,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def book(service):
    """Async factory that books and asserts success."""

    async def _book(date_time=MONDAY_10AM, patient_id="PAT001", doctor_id="DOC001", **kwargs):
        outcome = await service.book(patient_id, doctor_id, date_time, **kwargs)
        assert outcome.success, outcome.error
        return outcome.value

    return _book


@pytest.fixture
def confirmed(service, book):
    """Async factory for a booked, approved and confirmed appointment."""

    async def _confirmed(date_time=MONDAY_10AM, patient_id="PAT001"):
        appt = await book(date_time, patient_id=patient_id)
        assert (await service.approve(appt.appointment_id, "MGR001", "ok")).success
        outcome = await service.confirm(appt.appointment_id, patient_id)
        assert outcome.success, outcome.error
        return outcome.value

    return _confirmed
