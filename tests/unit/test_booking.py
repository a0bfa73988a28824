"""Tests for clinicbook.booking module."""

import asyncio
import re
from datetime import date, datetime, time, timezone
from unittest.mock import AsyncMock

import pytest

from clinicbook.booking import BookingCoordinator, generate_appointment_id, new_appointment
from clinicbook.models import (
    AppointmentStatus,
    AppointmentType,
    FailureKind,
    HistoryAction,
    Priority,
)
from clinicbook.notifications import NotificationKind, Notifier
from clinicbook.storage import DependencyFailureError, SlotTakenError

MONDAY_10AM = datetime(2024, 1, 15, 10, 0)


class TestGenerateAppointmentId:
    def test_format(self):
        assert re.fullmatch(r"APT\d+[A-Z]{2}", generate_appointment_id())

    def test_unique(self):
        ids = {generate_appointment_id() for _ in range(200)}
        assert len(ids) == 200


class TestNewAppointment:
    def test_initial_state(self, patient, doctor, clock):
        appt = new_appointment(patient, doctor, MONDAY_10AM, 30, clock())

        assert appt.status == AppointmentStatus.PENDING_APPROVAL
        assert appt.patient_id == "PAT001"
        assert appt.doctor_id == "DOC001"
        assert appt.consultation_fee == 120.0
        assert appt.approval_workflow.requested_date == clock()
        assert appt.rescheduling.reschedule_count == 0
        assert len(appt.history) == 1
        assert appt.history[0].action == HistoryAction.CREATED
        assert appt.history[0].actor == "PAT001"


class TestBook:
    """Tests for BookingCoordinator.book via the service."""

    @pytest.mark.asyncio
    async def test_book_success(self, service, outbox):
        outcome = await service.book(
            "PAT001",
            "DOC001",
            MONDAY_10AM,
            30,
            {"source": "web"},
            appointment_type="follow_up",
            priority="urgent",
            reason_for_visit="Checkup",
        )

        assert outcome.success
        appt = outcome.value
        assert appt.status == AppointmentStatus.PENDING_APPROVAL
        assert appt.appointment_type == AppointmentType.FOLLOW_UP
        assert appt.priority == Priority.URGENT
        assert appt.metadata == {"source": "web"}
        assert appt.reason_for_visit == "Checkup"

        stored = await service.get_appointment(appt.appointment_id)
        assert stored.value == appt

        assert len(outbox.sent) == 1
        assert outbox.sent[0].recipient_id == "PAT001"
        assert outbox.sent[0].recipient_type == "patient"
        assert outbox.sent[0].kind == NotificationKind.BOOKING_CONFIRMATION.value

    @pytest.mark.asyncio
    async def test_default_duration(self, service):
        outcome = await service.book("PAT001", "DOC001", MONDAY_10AM)
        assert outcome.value.duration == 30

    @pytest.mark.asyncio
    async def test_second_booking_same_slot_conflicts(self, service):
        """Booking DOC001 at 10:00 twice should fail the second time."""
        first = await service.book("PAT001", "DOC001", MONDAY_10AM, 30)
        second = await service.book("PAT002", "DOC001", MONDAY_10AM, 30)

        assert first.success
        assert not second.success
        assert second.kind == FailureKind.SLOT_CONFLICT

    @pytest.mark.asyncio
    async def test_overlapping_booking_conflicts(self, service):
        await service.book("PAT001", "DOC001", MONDAY_10AM, 60)
        outcome = await service.book("PAT002", "DOC001", datetime(2024, 1, 15, 10, 30), 30)
        assert outcome.kind == FailureKind.SLOT_CONFLICT

    @pytest.mark.asyncio
    async def test_adjacent_booking_allowed(self, service):
        await service.book("PAT001", "DOC001", MONDAY_10AM, 30)
        outcome = await service.book("PAT002", "DOC001", datetime(2024, 1, 15, 10, 30), 30)
        assert outcome.success

    @pytest.mark.asyncio
    async def test_unknown_patient(self, service):
        outcome = await service.book("PAT999", "DOC001", MONDAY_10AM)
        assert outcome.kind == FailureKind.NOT_FOUND
        assert outcome.error.details["entity"] == "patient"

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, service):
        outcome = await service.book("PAT001", "DOC999", MONDAY_10AM)
        assert outcome.kind == FailureKind.NOT_FOUND
        assert outcome.error.details["entity"] == "doctor"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "when",
        [
            datetime(2024, 1, 15, 8, 0),  # before the window
            datetime(2024, 1, 15, 16, 45),  # runs past 17:00
            datetime(2024, 1, 16, 10, 0),  # Tuesday is switched off
            datetime(2024, 1, 18, 10, 0),  # no Thursday window
        ],
    )
    async def test_outside_availability(self, service, when):
        outcome = await service.book("PAT001", "DOC001", when, 30)
        assert outcome.kind == FailureKind.OUTSIDE_AVAILABILITY

    @pytest.mark.asyncio
    async def test_past_start_is_policy_violation(self, service):
        outcome = await service.book("PAT001", "DOC001", datetime(2024, 1, 8, 10, 0))
        assert outcome.kind == FailureKind.POLICY_VIOLATION
        assert outcome.error.details["rule"] == "lead_time"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"duration": 20}, "duration"),
            ({"appointment_type": "surgery"}, "type"),
            ({"priority": "whenever"}, "priority"),
        ],
    )
    async def test_invalid_enumerations(self, service, kwargs, field):
        outcome = await service.book("PAT001", "DOC001", MONDAY_10AM, **kwargs)
        assert outcome.kind == FailureKind.INVALID_REQUEST
        assert outcome.error.details["field"] == field

    @pytest.mark.asyncio
    async def test_missing_fields(self, service):
        assert (await service.book("", "DOC001", MONDAY_10AM)).kind == FailureKind.INVALID_REQUEST
        assert (await service.book("PAT001", "DOC001", None)).kind == FailureKind.INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_failed_booking_sends_nothing(self, service, outbox):
        await service.book("PAT999", "DOC001", MONDAY_10AM)
        assert outbox.sent == []

    @pytest.mark.asyncio
    async def test_aware_datetime_stored_as_local(self, service, store):
        outcome = await service.book("PAT001", "DOC001", MONDAY_10AM.astimezone(timezone.utc))

        assert outcome.success, outcome.error
        assert outcome.value.date_time == MONDAY_10AM
        assert outcome.value.date_time.tzinfo is None
        assert (await store.find_by_id(outcome.value.appointment_id)).date_time == MONDAY_10AM

    @pytest.mark.asyncio
    async def test_aware_datetime_conflicts_with_naive_booking(self, service):
        await service.book("PAT001", "DOC001", MONDAY_10AM)
        outcome = await service.book("PAT002", "DOC001", MONDAY_10AM.astimezone())
        assert outcome.kind == FailureKind.SLOT_CONFLICT

    @pytest.mark.asyncio
    async def test_utc_datetime_gives_outcome(self, service):
        """A UTC start never raises, whatever the local zone makes of it."""
        outcome = await service.book(
            "PAT001", "DOC001", datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
        )
        if outcome.success:
            assert outcome.value.date_time.tzinfo is None
        else:
            assert outcome.kind == FailureKind.OUTSIDE_AVAILABILITY


class TestCheckSlot:
    """Tests for BookingCoordinator.check via the service."""

    @pytest.mark.asyncio
    async def test_free_slot(self, service, store, outbox):
        outcome = await service.check_slot("PAT001", "DOC001", MONDAY_10AM)

        assert outcome.success
        assert outcome.value.date == date(2024, 1, 15)
        assert outcome.value.start_time == time(10, 0)
        assert len(store) == 0
        assert outbox.sent == []

    @pytest.mark.asyncio
    async def test_returns_covering_slot(self, service):
        outcome = await service.check_slot(
            "PAT001", "DOC001", datetime(2024, 1, 15, 10, 15), 15
        )
        assert outcome.value.start == MONDAY_10AM

    @pytest.mark.asyncio
    async def test_taken_slot_conflicts(self, service, book):
        await book()

        outcome = await service.check_slot("PAT002", "DOC001", datetime(2024, 1, 15, 9, 45), 30)

        assert outcome.kind == FailureKind.SLOT_CONFLICT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "args, kwargs, kind",
        [
            (("PAT999", "DOC001", MONDAY_10AM), {}, FailureKind.NOT_FOUND),
            (("PAT001", "DOC999", MONDAY_10AM), {}, FailureKind.NOT_FOUND),
            (("PAT001", "DOC001", None), {}, FailureKind.INVALID_REQUEST),
            (("PAT001", "DOC001", MONDAY_10AM), {"duration": 20}, FailureKind.INVALID_REQUEST),
            (("PAT001", "DOC001", MONDAY_10AM), {"priority": "x"}, FailureKind.INVALID_REQUEST),
            (("PAT001", "DOC001", datetime(2024, 1, 8, 10)), {}, FailureKind.POLICY_VIOLATION),
            (
                ("PAT001", "DOC001", datetime(2024, 1, 16, 10)),
                {},
                FailureKind.OUTSIDE_AVAILABILITY,
            ),
        ],
    )
    async def test_same_failures_as_book(self, service, store, args, kwargs, kind):
        checked = await service.check_slot(*args, **kwargs)
        booked = await service.book(*args, **kwargs)

        assert checked.kind == kind
        assert booked.kind == kind
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_aware_datetime(self, service):
        outcome = await service.check_slot(
            "PAT001", "DOC001", MONDAY_10AM.astimezone(timezone.utc)
        )
        assert outcome.value.start == MONDAY_10AM

    @pytest.mark.asyncio
    async def test_check_then_book(self, service):
        assert (await service.check_slot("PAT001", "DOC001", MONDAY_10AM)).success
        assert (await service.book("PAT001", "DOC001", MONDAY_10AM)).success
        assert (await service.check_slot("PAT002", "DOC001", MONDAY_10AM)).kind == (
            FailureKind.SLOT_CONFLICT
        )

    @pytest.mark.asyncio
    async def test_check_takes_no_lock(self, service):
        """A check runs while another operation holds the doctor's lock."""
        async with service.locks.hold("DOC001"):
            outcome = await asyncio.wait_for(
                service.check_slot("PAT001", "DOC001", MONDAY_10AM), 1.0
            )
        assert outcome.success


class TestBookCollaborators:
    """BookingCoordinator with mocked collaborators."""

    def _coordinator(self, directory, store, settings, clock, dispatcher=None):
        dispatcher = dispatcher or AsyncMock()
        return BookingCoordinator(
            directory,
            directory,
            store,
            Notifier(dispatcher, timeout=0.5),
            settings=settings,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_slot_taken_at_commit_is_conflict(self, directory, settings, clock):
        """A uniqueness violation at create time surfaces as slot_conflict."""
        store = AsyncMock()
        store.find_conflicting.return_value = []
        store.create.side_effect = SlotTakenError("DOC001", MONDAY_10AM)

        outcome = await self._coordinator(directory, store, settings, clock).book(
            "PAT001", "DOC001", MONDAY_10AM
        )

        assert outcome.kind == FailureKind.SLOT_CONFLICT

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, directory, settings, clock):
        store = AsyncMock()
        store.find_conflicting.side_effect = DependencyFailureError.for_store("down")

        with pytest.raises(DependencyFailureError):
            await self._coordinator(directory, store, settings, clock).book(
                "PAT001", "DOC001", MONDAY_10AM
            )

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_booking(
        self, directory, store, settings, clock
    ):
        dispatcher = AsyncMock()
        dispatcher.send.side_effect = RuntimeError("smtp down")

        outcome = await self._coordinator(directory, store, settings, clock, dispatcher).book(
            "PAT001", "DOC001", MONDAY_10AM
        )

        assert outcome.success
        assert len(store) == 1
        dispatcher.send.assert_awaited_once()
