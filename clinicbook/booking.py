"""Booking: validate a request and create a pending appointment."""

import logging
import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from clinicbook.availability import covering_slot
from clinicbook.clock import Clock, system_clock, to_local_naive
from clinicbook.conflicts import has_conflict
from clinicbook.directory import DoctorDirectory, PatientDirectory
from clinicbook.locking import DoctorLocks
from clinicbook.models import (
    Appointment,
    AppointmentStatus,
    AppointmentType,
    ApprovalWorkflow,
    Doctor,
    HistoryAction,
    HistoryEntry,
    Patient,
    Priority,
    Role,
    SchedulingSettings,
    Slot,
)
from clinicbook.notifications import NotificationKind, Notifier, render_message
from clinicbook.outcome import (
    Outcome,
    invalid_request,
    not_found,
    outside_availability,
    policy_violation,
    slot_conflict,
)
from clinicbook.storage import AppointmentStore, SlotTakenError, call_store

logger = logging.getLogger(__name__)


def generate_appointment_id() -> str:
    """APT + nanosecond timestamp suffix + two random uppercase letters."""
    suffix = str(time.time_ns())[6:]
    letters = "".join(random.choices(string.ascii_uppercase, k=2))
    return f"APT{suffix}{letters}"


def new_appointment(
    patient: Patient,
    doctor: Doctor,
    date_time: datetime,
    duration: int,
    now: datetime,
    appointment_type: AppointmentType = AppointmentType.CONSULTATION,
    priority: Priority = Priority.ROUTINE,
    reason_for_visit: str = "",
    metadata: dict[str, Any] | None = None,
) -> Appointment:
    """Build a complete pending appointment, ready to be stored."""
    return Appointment(
        appointment_id=generate_appointment_id(),
        patient_id=patient.id,
        doctor_id=doctor.id,
        date_time=date_time,
        duration=duration,
        status=AppointmentStatus.PENDING_APPROVAL,
        appointment_type=appointment_type,
        priority=priority,
        reason_for_visit=reason_for_visit,
        consultation_fee=doctor.consultation_fee,
        metadata=dict(metadata or {}),
        approval_workflow=ApprovalWorkflow(requested_date=now),
        history=(
            HistoryEntry(
                action=HistoryAction.CREATED,
                actor=patient.id,
                timestamp=now,
                notes="Appointment requested by patient",
            ),
        ),
        created_at=now,
        updated_at=now,
    )


def parse_choice(enum_type, value, field: str):
    """Coerce a raw value into an enum member.

    Returns:
        (member, None) or (None, BookingFailure)
    """
    try:
        return enum_type(value), None
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        return None, invalid_request(field, f"Invalid {field} '{value}'. Allowed: {allowed}")


@dataclass(frozen=True)
class BookingRequest:
    """A booking request that passed every check short of the calendar."""

    patient: Patient
    doctor: Doctor
    date_time: datetime
    duration: int
    appointment_type: AppointmentType
    priority: Priority
    slot: Slot

    @property
    def end(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration)


class BookingCoordinator:
    """Creates appointments after availability and conflict checks."""

    def __init__(
        self,
        patients: PatientDirectory,
        doctors: DoctorDirectory,
        store: AppointmentStore,
        notifier: Notifier,
        locks: DoctorLocks | None = None,
        settings: SchedulingSettings | None = None,
        clock: Clock = system_clock,
    ):
        self.patients = patients
        self.doctors = doctors
        self.store = store
        self.notifier = notifier
        self.locks = locks or DoctorLocks()
        self.settings = settings or SchedulingSettings()
        self.clock = clock

    async def validate(
        self,
        patient_id: str,
        doctor_id: str,
        date_time: datetime | None,
        duration: int | None = None,
        appointment_type: AppointmentType | str = AppointmentType.CONSULTATION,
        priority: Priority | str = Priority.ROUTINE,
    ) -> Outcome[BookingRequest]:
        """Every booking check except the conflict check, in order.

        Aware datetimes are converted to naive local time first.
        """
        for field, value in (("patient_id", patient_id), ("doctor_id", doctor_id)):
            if not value:
                return Outcome.fail(invalid_request(field, f"{field} is required"))
        if date_time is None:
            return Outcome.fail(invalid_request("date_time", "date_time is required"))
        date_time = to_local_naive(date_time)

        duration = self.settings.default_duration if duration is None else duration
        if duration not in self.settings.allowed_durations:
            allowed = ", ".join(str(d) for d in self.settings.allowed_durations)
            return Outcome.fail(
                invalid_request("duration", f"Invalid duration {duration}. Allowed: {allowed}")
            )
        appointment_type, error = parse_choice(AppointmentType, appointment_type, "type")
        if error:
            return Outcome.fail(error)
        priority, error = parse_choice(Priority, priority, "priority")
        if error:
            return Outcome.fail(error)

        patient = await self.patients.resolve_patient(patient_id)
        if patient is None:
            return Outcome.fail(not_found("patient", patient_id))
        doctor = await self.doctors.resolve_doctor(doctor_id)
        if doctor is None:
            return Outcome.fail(not_found("doctor", doctor_id))

        if date_time < self.clock():
            return Outcome.fail(
                policy_violation("lead_time", "Appointments cannot be booked in the past")
            )
        slot = covering_slot(doctor.availability, date_time, duration, self.settings.slot_minutes)
        if slot is None:
            return Outcome.fail(outside_availability())

        return Outcome.ok(
            BookingRequest(
                patient=patient,
                doctor=doctor,
                date_time=date_time,
                duration=duration,
                appointment_type=appointment_type,
                priority=priority,
                slot=slot,
            )
        )

    async def _is_taken(self, request: BookingRequest) -> bool:
        existing = await call_store(
            "find_conflicting",
            self.store.find_conflicting(request.doctor.id, request.date_time, request.end),
            self.settings.store_timeout,
        )
        return has_conflict(request.doctor.id, request.date_time, request.duration, existing)

    async def check(
        self,
        patient_id: str,
        doctor_id: str,
        date_time: datetime | None,
        duration: int | None = None,
        appointment_type: AppointmentType | str = AppointmentType.CONSULTATION,
        priority: Priority | str = Priority.ROUTINE,
    ) -> Outcome[Slot]:
        """Run the booking checks without writing anything.

        The answer can go stale as soon as it is returned; only book()
        holds the slot.

        Returns:
            Outcome with the covering slot, or the failure book() would report
        """
        validated = await self.validate(
            patient_id, doctor_id, date_time, duration, appointment_type, priority
        )
        if not validated.success:
            return Outcome.fail(validated.error)

        request = validated.unwrap()
        if await self._is_taken(request):
            return Outcome.fail(slot_conflict())
        return Outcome.ok(request.slot)

    async def book(
        self,
        patient_id: str,
        doctor_id: str,
        date_time: datetime | None,
        duration: int | None = None,
        metadata: dict[str, Any] | None = None,
        appointment_type: AppointmentType | str = AppointmentType.CONSULTATION,
        priority: Priority | str = Priority.ROUTINE,
        reason_for_visit: str = "",
    ) -> Outcome[Appointment]:
        """Book an appointment in pending_approval.

        Returns:
            Outcome with the created appointment, or one of not_found,
            invalid_request, policy_violation, outside_availability,
            slot_conflict

        Raises:
            DependencyFailureError: If the store fails or times out
        """
        validated = await self.validate(
            patient_id, doctor_id, date_time, duration, appointment_type, priority
        )
        if not validated.success:
            return Outcome.fail(validated.error)
        request = validated.unwrap()
        when = request.date_time.isoformat()

        async with self.locks.hold(doctor_id):
            if await self._is_taken(request):
                logger.info(f"Slot conflict for {doctor_id} at {when}")
                return Outcome.fail(slot_conflict())

            appointment = new_appointment(
                request.patient,
                request.doctor,
                request.date_time,
                request.duration,
                self.clock(),
                appointment_type=request.appointment_type,
                priority=request.priority,
                reason_for_visit=reason_for_visit,
                metadata=metadata,
            )
            try:
                await call_store(
                    "create", self.store.create(appointment), self.settings.store_timeout
                )
            except SlotTakenError:
                logger.info(f"Slot taken at commit for {doctor_id} at {when}")
                return Outcome.fail(slot_conflict())

        logger.info(
            f"✓ Booked {appointment.appointment_id}: {patient_id} with {doctor_id} "
            f"at {when} ({request.duration} min)"
        )
        await self.notifier.notify(
            request.patient.id,
            Role.PATIENT,
            render_message(NotificationKind.BOOKING_CONFIRMATION, appointment),
            NotificationKind.BOOKING_CONFIRMATION,
        )
        return Outcome.ok(appointment)
