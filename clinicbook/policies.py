"""Rescheduling and cancellation policies."""

import logging
from datetime import datetime, timedelta

from clinicbook.availability import covering_slot
from clinicbook.clock import Clock, system_clock, to_local_naive
from clinicbook.conflicts import has_conflict
from clinicbook.directory import DoctorDirectory
from clinicbook.locking import DoctorLocks
from clinicbook.models import (
    LIVE_STATUSES,
    Appointment,
    Cancellation,
    CancellationReceipt,
    HistoryAction,
    RescheduleEntry,
    SchedulingSettings,
)
from clinicbook.notifications import NotificationKind, Notifier
from clinicbook.outcome import (
    Outcome,
    invalid_request,
    invalid_transition,
    not_found,
    outside_availability,
    policy_violation,
    reschedule_limit_exceeded,
    slot_conflict,
)
from clinicbook.storage import AppointmentStore, SlotTakenError, call_store
from clinicbook.workflow import Action, LifecycleOperations, record

logger = logging.getLogger(__name__)


def refund_eligible(date_time: datetime, now: datetime, window_hours: float = 24.0) -> bool:
    """Refund only when cancelled strictly more than window_hours ahead."""
    return (date_time - now) > timedelta(hours=window_hours)


class ReschedulingPolicy(LifecycleOperations):
    """Moves a live appointment to a new start time, a bounded number of times."""

    def __init__(
        self,
        doctors: DoctorDirectory,
        store: AppointmentStore,
        notifier: Notifier,
        locks: DoctorLocks | None = None,
        clock: Clock = system_clock,
        settings: SchedulingSettings | None = None,
    ):
        super().__init__(store, notifier, locks=locks, clock=clock, settings=settings)
        self.doctors = doctors

    async def reschedule(
        self,
        appointment_id: str,
        new_date_time: datetime | None,
        reason: str,
        actor: str,
    ) -> Outcome[Appointment]:
        """Move an appointment, keeping its status.

        Availability and conflicts are checked exactly as for a new
        booking, ignoring the appointment being moved.

        Returns:
            Outcome with the moved appointment, or one of not_found,
            invalid_request, invalid_transition, reschedule_limit_exceeded,
            policy_violation, outside_availability, slot_conflict
        """
        if not actor or not actor.strip():
            return Outcome.fail(invalid_request("actor", "An actor is required"))
        if new_date_time is None:
            return Outcome.fail(invalid_request("new_date_time", "new_date_time is required"))
        new_date_time = to_local_naive(new_date_time)

        current = await self.load(appointment_id)
        if current is None:
            return Outcome.fail(not_found("appointment", appointment_id))

        async with self.locks.hold(current.doctor_id):
            current = await self.load(appointment_id)
            if current is None:
                return Outcome.fail(not_found("appointment", appointment_id))

            failure = await self._check(current, new_date_time)
            if failure:
                logger.info(f"Rejected reschedule of {appointment_id}: {failure.error}")
                return failure

            now = self.clock()
            previous = current.rescheduling
            entry = RescheduleEntry(
                from_date_time=current.date_time,
                to_date_time=new_date_time,
                reason=reason,
                requested_by=actor,
                timestamp=now,
            )
            rescheduling = previous.model_copy(
                update={
                    "reschedule_count": previous.reschedule_count + 1,
                    "original_date_time": previous.original_date_time or current.date_time,
                    "reschedule_history": (*previous.reschedule_history, entry),
                }
            )
            updated = current.model_copy(
                update={
                    "date_time": new_date_time,
                    "rescheduling": rescheduling,
                    "updated_at": now,
                    "history": record(
                        current,
                        HistoryAction.RESCHEDULED,
                        actor,
                        now,
                        f"Rescheduled. Reason: {reason}" if reason else "Rescheduled",
                        {
                            "from": current.date_time.isoformat(),
                            "to": new_date_time.isoformat(),
                        },
                    ),
                }
            )
            try:
                await self.persist(updated)
            except SlotTakenError:
                logger.info(f"Slot taken at commit while rescheduling {appointment_id}")
                return Outcome.fail(slot_conflict())

        logger.info(
            f"Appointment {appointment_id} rescheduled "
            f"{current.date_time.isoformat()} -> {new_date_time.isoformat()} "
            f"({rescheduling.reschedule_count}/{self.settings.max_reschedules})"
        )
        note = f"Reason: {reason}" if reason else ""
        await self.notify_counter_party(updated, actor, NotificationKind.RESCHEDULED, note)
        return Outcome.ok(updated)

    async def _check(
        self, appointment: Appointment, new_date_time: datetime
    ) -> Outcome[Appointment] | None:
        if appointment.status not in LIVE_STATUSES:
            return Outcome.fail(invalid_transition(appointment.status.value, "rescheduled"))
        if appointment.rescheduling.reschedule_count >= self.settings.max_reschedules:
            return Outcome.fail(reschedule_limit_exceeded(self.settings.max_reschedules))
        if new_date_time < self.clock():
            return Outcome.fail(
                policy_violation("lead_time", "Appointments cannot be moved into the past")
            )

        doctor = await self.doctors.resolve_doctor(appointment.doctor_id)
        if doctor is None:
            return Outcome.fail(not_found("doctor", appointment.doctor_id))
        slot = covering_slot(
            doctor.availability,
            new_date_time,
            appointment.duration,
            self.settings.slot_minutes,
        )
        if slot is None:
            return Outcome.fail(outside_availability())

        end = new_date_time + timedelta(minutes=appointment.duration)
        existing = await call_store(
            "find_conflicting",
            self.store.find_conflicting(appointment.doctor_id, new_date_time, end),
            self.settings.store_timeout,
        )
        if has_conflict(
            appointment.doctor_id,
            new_date_time,
            appointment.duration,
            existing,
            exclude_id=appointment.appointment_id,
        ):
            return Outcome.fail(slot_conflict())
        return None


class CancellationPolicy(LifecycleOperations):
    """Cancels approved or confirmed appointments and decides the refund."""

    async def cancel(
        self, appointment_id: str, actor: str, reason: str = ""
    ) -> Outcome[CancellationReceipt]:
        """Cancel an appointment.

        Refund eligibility is computed once, from the appointment's
        current date_time and the clock, and stored with the cancellation.
        """

        def prepare(appt: Appointment, now: datetime):
            eligible = refund_eligible(
                appt.date_time, now, self.settings.refund_window_hours
            )
            cancellation = Cancellation(
                cancelled_by=actor,
                reason=reason,
                cancelled_date=now,
                refund_eligible=eligible,
            )
            return (
                {"cancellation": cancellation},
                {"reason": reason, "refund_eligible": eligible},
            )

        def refund_note(appt: Appointment) -> str:
            if appt.cancellation and appt.cancellation.refund_eligible:
                return "You are eligible for a refund."
            return "This cancellation is not eligible for a refund."

        outcome = await self.run_transition(
            appointment_id,
            Action.CANCEL,
            actor,
            f"Appointment cancelled. Reason: {reason}" if reason else "Appointment cancelled",
            prepare,
            refund_note,
        )
        if not outcome.success:
            return Outcome.fail(outcome.error)

        cancelled = outcome.unwrap()
        return Outcome.ok(
            CancellationReceipt(
                appointment_id=cancelled.appointment_id,
                refund_eligible=cancelled.cancellation.refund_eligible,
                appointment=cancelled,
            )
        )
