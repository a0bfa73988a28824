"""SchedulingService: the public entry point to the scheduling core.

Wires the availability, conflict, booking, workflow and policy
components to their collaborators and exposes every caller operation
plus the read-side queries.

Example:
    >>> service = SchedulingService(
    ...     store=InMemoryAppointmentStore(),
    ...     directory=load_directory("directory.yaml"),
    ... )
    >>> outcome = await service.book("PAT001", "DOC001", datetime(2024, 1, 15, 10))
"""

import logging
from collections.abc import Collection, Iterable
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from clinicbook.availability import generate_slot_range
from clinicbook.booking import BookingCoordinator
from clinicbook.clock import Clock, system_clock, to_local_naive
from clinicbook.config import DATABASE_PATH, DIRECTORY_PATH
from clinicbook.conflicts import has_conflict
from clinicbook.directory import (
    DoctorDirectory,
    InMemoryDirectory,
    PatientDirectory,
    load_directory,
)
from clinicbook.locking import DoctorLocks
from clinicbook.models import (
    LIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
    CancellationReceipt,
    Priority,
    SchedulingSettings,
    Slot,
)
from clinicbook.notifications import NotificationDispatcher, Notifier, default_dispatcher
from clinicbook.outcome import Outcome, invalid_request, not_found
from clinicbook.policies import CancellationPolicy, ReschedulingPolicy, refund_eligible
from clinicbook.storage import AppointmentStore, SQLiteAppointmentStore, call_store
from clinicbook.workflow import ApprovalWorkflow, BulkApprovalItem, allowed_actions

logger = logging.getLogger(__name__)

UPCOMING_STATUSES = frozenset({AppointmentStatus.APPROVED, AppointmentStatus.CONFIRMED})
MAX_SLOT_RANGE_DAYS = 31


class AppointmentStatistics(BaseModel):
    total: int
    by_status: dict[str, int]
    average_reschedules: float


class AppointmentSummary(BaseModel):
    """Snapshot of an appointment and what can still happen to it."""

    appointment_id: str
    patient_id: str
    doctor_id: str
    date_time: datetime
    duration: int
    status: AppointmentStatus
    appointment_type: AppointmentType
    priority: Priority
    reschedule_count: int
    reschedules_remaining: int
    allowed_actions: list[str]
    hours_until: float
    refund_eligible_if_cancelled: bool


class SchedulingService:
    """Facade over the scheduling components.

    Args:
        store: Appointment persistence
        directory: Object implementing both directory protocols
        patients: Patient directory (overrides directory)
        doctors: Doctor directory (overrides directory)
        dispatcher: Notification delivery, defaults from config
        settings: Scheduling policy knobs
        clock: Source of "now"
        locks: Per-doctor locks, shared by all components
    """

    def __init__(
        self,
        store: AppointmentStore,
        directory: Any = None,
        patients: PatientDirectory | None = None,
        doctors: DoctorDirectory | None = None,
        dispatcher: NotificationDispatcher | None = None,
        settings: SchedulingSettings | None = None,
        clock: Clock = system_clock,
        locks: DoctorLocks | None = None,
    ):
        directory = directory if directory is not None else InMemoryDirectory()
        self.store = store
        self.patients = patients or directory
        self.doctors = doctors or directory
        self.settings = settings or SchedulingSettings()
        self.clock = clock
        self.locks = locks or DoctorLocks()
        self.dispatcher = dispatcher or default_dispatcher()
        self.notifier = Notifier(self.dispatcher, timeout=self.settings.notify_timeout)

        self.coordinator = BookingCoordinator(
            self.patients,
            self.doctors,
            store,
            self.notifier,
            locks=self.locks,
            settings=self.settings,
            clock=clock,
        )
        self.workflow = ApprovalWorkflow(
            store, self.notifier, locks=self.locks, clock=clock, settings=self.settings
        )
        self.rescheduling = ReschedulingPolicy(
            self.doctors,
            store,
            self.notifier,
            locks=self.locks,
            clock=clock,
            settings=self.settings,
        )
        self.cancellation = CancellationPolicy(
            store, self.notifier, locks=self.locks, clock=clock, settings=self.settings
        )

    async def _list(self, **filters: Any) -> list[Appointment]:
        return await call_store(
            "list_appointments",
            self.store.list_appointments(**filters),
            self.settings.store_timeout,
        )

    # =========================================================================
    # Availability
    # =========================================================================

    async def get_available_slots(self, doctor_id: str, day: date) -> Outcome[list[Slot]]:
        """Slots for a day, flagged unavailable where a live booking overlaps."""
        outcome = await self.get_available_slots_range(doctor_id, day, days=1)
        if not outcome.success:
            return Outcome.fail(outcome.error)
        return Outcome.ok(outcome.unwrap()[day])

    async def get_available_slots_range(
        self, doctor_id: str, start_day: date, days: int = 7
    ) -> Outcome[dict[date, list[Slot]]]:
        """Slots for consecutive days, keyed by date.

        Days off are present with an empty list.
        """
        if not 1 <= days <= MAX_SLOT_RANGE_DAYS:
            return Outcome.fail(
                invalid_request("days", f"days must be between 1 and {MAX_SLOT_RANGE_DAYS}")
            )
        doctor = await self.doctors.resolve_doctor(doctor_id)
        if doctor is None:
            return Outcome.fail(not_found("doctor", doctor_id))

        range_start = datetime.combine(start_day, time.min)
        # A day earlier catches long appointments running over midnight
        booked = await self._list(
            doctor_id=doctor_id,
            statuses=LIVE_STATUSES,
            start=range_start - timedelta(days=1),
            end=range_start + timedelta(days=days),
        )
        by_day = generate_slot_range(
            doctor.availability, start_day, days, self.settings.slot_minutes
        )
        return Outcome.ok(
            {
                day: [
                    slot.model_copy(
                        update={
                            "available": not has_conflict(
                                doctor_id, slot.start, slot.duration_minutes, booked
                            )
                        }
                    )
                    for slot in slots
                ]
                for day, slots in by_day.items()
            }
        )

    async def check_slot(
        self,
        patient_id: str,
        doctor_id: str,
        date_time: datetime | None,
        duration: int | None = None,
        appointment_type: AppointmentType | str = AppointmentType.CONSULTATION,
        priority: Priority | str = Priority.ROUTINE,
    ) -> Outcome[Slot]:
        """Would book() accept this request right now? Writes nothing."""
        return await self.coordinator.check(
            patient_id, doctor_id, date_time, duration, appointment_type, priority
        )

    # =========================================================================
    # Commands
    # =========================================================================

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
        return await self.coordinator.book(
            patient_id,
            doctor_id,
            date_time,
            duration,
            metadata,
            appointment_type=appointment_type,
            priority=priority,
            reason_for_visit=reason_for_visit,
        )

    async def approve(self, appointment_id: str, actor: str, notes: str = "") -> Outcome[Appointment]:
        return await self.workflow.approve(appointment_id, actor, notes)

    async def decline(self, appointment_id: str, actor: str, reason: str) -> Outcome[Appointment]:
        return await self.workflow.decline(appointment_id, actor, reason)

    async def confirm(self, appointment_id: str, actor: str) -> Outcome[Appointment]:
        return await self.workflow.confirm(appointment_id, actor)

    async def start(self, appointment_id: str, actor: str) -> Outcome[Appointment]:
        return await self.workflow.start(appointment_id, actor)

    async def complete(
        self,
        appointment_id: str,
        actor: str,
        notes: str = "",
        diagnosis: str = "",
        treatment_plan: str = "",
        follow_up_required: bool = False,
    ) -> Outcome[Appointment]:
        return await self.workflow.complete(
            appointment_id, actor, notes, diagnosis, treatment_plan, follow_up_required
        )

    async def mark_no_show(self, appointment_id: str, actor: str, reason: str = "") -> Outcome[Appointment]:
        return await self.workflow.mark_no_show(appointment_id, actor, reason)

    async def reschedule(
        self,
        appointment_id: str,
        new_date_time: datetime | None,
        reason: str,
        actor: str,
    ) -> Outcome[Appointment]:
        return await self.rescheduling.reschedule(appointment_id, new_date_time, reason, actor)

    async def cancel(self, appointment_id: str, actor: str, reason: str = "") -> Outcome[CancellationReceipt]:
        return await self.cancellation.cancel(appointment_id, actor, reason)

    async def bulk_approve(
        self, appointment_ids: Iterable[str], actor: str, notes: str = ""
    ) -> list[BulkApprovalItem]:
        return await self.workflow.bulk_approve(appointment_ids, actor, notes)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_appointment(self, appointment_id: str) -> Outcome[Appointment]:
        appointment = await self.workflow.load(appointment_id)
        if appointment is None:
            return Outcome.fail(not_found("appointment", appointment_id))
        return Outcome.ok(appointment)

    async def pending_approvals(self, doctor_id: str | None = None) -> list[Appointment]:
        """Approval queue, earliest appointment first."""
        return await self._list(
            doctor_id=doctor_id, statuses={AppointmentStatus.PENDING_APPROVAL}
        )

    async def appointments_for_patient(
        self,
        patient_id: str,
        statuses: Collection[AppointmentStatus] | None = None,
    ) -> list[Appointment]:
        """Patient's appointments, newest first."""
        appointments = await self._list(patient_id=patient_id, statuses=statuses)
        return sorted(appointments, key=lambda a: a.date_time, reverse=True)

    async def appointments_for_doctor(
        self,
        doctor_id: str,
        day: date | None = None,
        statuses: Collection[AppointmentStatus] | None = None,
    ) -> list[Appointment]:
        """Doctor's appointments, optionally limited to one day."""
        start = end = None
        if day is not None:
            start = datetime.combine(day, time.min)
            end = start + timedelta(days=1)
        return await self._list(doctor_id=doctor_id, statuses=statuses, start=start, end=end)

    async def upcoming_appointments(
        self,
        days: int = 7,
        doctor_id: str | None = None,
        patient_id: str | None = None,
    ) -> list[Appointment]:
        """Approved or confirmed appointments starting within the next days."""
        now = self.clock()
        return await self._list(
            doctor_id=doctor_id,
            patient_id=patient_id,
            statuses=UPCOMING_STATUSES,
            start=now,
            end=now + timedelta(days=days),
        )

    async def statistics(
        self,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AppointmentStatistics:
        """Counts per status and the average reschedule count."""
        start = to_local_naive(start) if start else None
        end = to_local_naive(end) if end else None
        appointments = await self._list(
            doctor_id=doctor_id, patient_id=patient_id, start=start, end=end
        )
        by_status = {status.value: 0 for status in AppointmentStatus}
        for appt in appointments:
            by_status[appt.status.value] += 1
        total = len(appointments)
        reschedules = sum(a.rescheduling.reschedule_count for a in appointments)
        return AppointmentStatistics(
            total=total,
            by_status=by_status,
            average_reschedules=round(reschedules / total, 2) if total else 0.0,
        )

    async def summary(self, appointment_id: str) -> Outcome[AppointmentSummary]:
        outcome = await self.get_appointment(appointment_id)
        if not outcome.success:
            return Outcome.fail(outcome.error)

        appt = outcome.unwrap()
        now = self.clock()
        count = appt.rescheduling.reschedule_count
        actions = [action.value for action in allowed_actions(appt.status)]
        remaining = max(self.settings.max_reschedules - count, 0)
        if appt.is_live and remaining:
            actions.append("reschedule")
        return Outcome.ok(
            AppointmentSummary(
                appointment_id=appt.appointment_id,
                patient_id=appt.patient_id,
                doctor_id=appt.doctor_id,
                date_time=appt.date_time,
                duration=appt.duration,
                status=appt.status,
                appointment_type=appt.appointment_type,
                priority=appt.priority,
                reschedule_count=count,
                reschedules_remaining=remaining,
                allowed_actions=actions,
                hours_until=round((appt.date_time - now).total_seconds() / 3600, 2),
                refund_eligible_if_cancelled=refund_eligible(
                    appt.date_time, now, self.settings.refund_window_hours
                ),
            )
        )


def build_service(
    db_path: str | Path | None = None,
    directory_path: str | Path | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> SchedulingService:
    """Service on the SQLite store and the YAML directory from config.

    A missing directory file leaves the directory empty.
    """
    directory_path = Path(directory_path or DIRECTORY_PATH)
    if directory_path.exists():
        directory = load_directory(directory_path)
        logger.info(f"✅ Directory loaded: {directory_path}")
    else:
        logger.warning(f"⚠️ Directory not found: {directory_path} (no patients or doctors)")
        directory = InMemoryDirectory()

    store = SQLiteAppointmentStore(db_path or DATABASE_PATH)
    return SchedulingService(store=store, directory=directory, dispatcher=dispatcher)
