"""Appointment lifecycle state machine.

TRANSITIONS is the single place that says which status an action may
start from and which status it leads to:

    pending_approval --approve--> approved
    pending_approval --decline--> declined      (terminal)
    approved         --confirm--> confirmed
    approved|confirmed --cancel--> cancelled    (terminal)
    confirmed        --start----> confirmed     (records start time)
    confirmed        --complete-> completed     (terminal)
    confirmed        --mark_no_show--> no_show  (terminal)

Every transition appends one history entry and sends one notification
to the counter-party.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

from clinicbook.clock import Clock, system_clock
from clinicbook.locking import DoctorLocks
from clinicbook.models import (
    Appointment,
    AppointmentStatus,
    ApprovalStatus,
    BookingFailure,
    Completion,
    HistoryAction,
    HistoryEntry,
    SchedulingSettings,
)
from clinicbook.notifications import (
    NotificationKind,
    Notifier,
    counter_party,
    render_message,
)
from clinicbook.outcome import Outcome, invalid_request, invalid_transition, not_found
from clinicbook.storage import AppointmentStore, DependencyFailureError, call_store

logger = logging.getLogger(__name__)

# (field updates, history data) computed from the current appointment and now
Prepare = Callable[[Appointment, datetime], tuple[dict[str, Any], dict[str, Any]]]


class Action(str, Enum):
    """Workflow actions that change an appointment's lifecycle."""

    APPROVE = "approve"
    DECLINE = "decline"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    START = "start"
    COMPLETE = "complete"
    MARK_NO_SHOW = "mark_no_show"


@dataclass(frozen=True)
class Transition:
    sources: frozenset[AppointmentStatus]
    target: AppointmentStatus
    history: HistoryAction
    notification: NotificationKind


TRANSITIONS: dict[Action, Transition] = {
    Action.APPROVE: Transition(
        frozenset({AppointmentStatus.PENDING_APPROVAL}),
        AppointmentStatus.APPROVED,
        HistoryAction.APPROVED,
        NotificationKind.APPROVED,
    ),
    Action.DECLINE: Transition(
        frozenset({AppointmentStatus.PENDING_APPROVAL}),
        AppointmentStatus.DECLINED,
        HistoryAction.DECLINED,
        NotificationKind.DECLINED,
    ),
    Action.CONFIRM: Transition(
        frozenset({AppointmentStatus.APPROVED}),
        AppointmentStatus.CONFIRMED,
        HistoryAction.CONFIRMED,
        NotificationKind.CONFIRMED,
    ),
    Action.CANCEL: Transition(
        frozenset({AppointmentStatus.APPROVED, AppointmentStatus.CONFIRMED}),
        AppointmentStatus.CANCELLED,
        HistoryAction.CANCELLED,
        NotificationKind.CANCELLED,
    ),
    Action.START: Transition(
        frozenset({AppointmentStatus.CONFIRMED}),
        AppointmentStatus.CONFIRMED,
        HistoryAction.STARTED,
        NotificationKind.STARTED,
    ),
    Action.COMPLETE: Transition(
        frozenset({AppointmentStatus.CONFIRMED}),
        AppointmentStatus.COMPLETED,
        HistoryAction.COMPLETED,
        NotificationKind.COMPLETED,
    ),
    Action.MARK_NO_SHOW: Transition(
        frozenset({AppointmentStatus.CONFIRMED}),
        AppointmentStatus.NO_SHOW,
        HistoryAction.NO_SHOW,
        NotificationKind.NO_SHOW,
    ),
}


def allowed_actions(status: AppointmentStatus) -> list[Action]:
    """Actions that may be applied to an appointment in this status."""
    return [action for action, t in TRANSITIONS.items() if status in t.sources]


def record(
    appointment: Appointment,
    action: HistoryAction,
    actor: str,
    timestamp: datetime,
    notes: str = "",
    data: dict[str, Any] | None = None,
) -> tuple[HistoryEntry, ...]:
    """History with one more entry appended."""
    entry = HistoryEntry(
        action=action, actor=actor, timestamp=timestamp, notes=notes, data=data or {}
    )
    return (*appointment.history, entry)


def apply_transition(
    appointment: Appointment,
    action: Action,
    actor: str,
    now: datetime,
    notes: str = "",
    updates: dict[str, Any] | None = None,
    data: dict[str, Any] | None = None,
) -> Outcome[Appointment]:
    """Apply one workflow action to an appointment.

    Pure: returns a new Appointment and leaves the input untouched.

    Returns:
        Outcome with the updated appointment, or an invalid_transition failure
    """
    transition = TRANSITIONS[action]
    if appointment.status not in transition.sources:
        return Outcome.fail(
            invalid_transition(appointment.status.value, transition.target.value)
        )
    if action is Action.START and appointment.started_at is not None:
        return Outcome.fail(invalid_transition(appointment.status.value, "started"))

    changes = dict(updates or {})
    changes.update(
        status=transition.target,
        updated_at=now,
        history=record(appointment, transition.history, actor, now, notes, data),
    )
    return Outcome.ok(appointment.model_copy(update=changes))


class BulkApprovalItem(BaseModel):
    """Per-ID result of a bulk approval."""

    appointment_id: str
    success: bool
    status: AppointmentStatus | None = None
    error: BookingFailure | None = None


class LifecycleOperations:
    """Shared plumbing for operations on an existing appointment.

    Loads under the doctor's lock, applies a change, saves, then
    notifies. Notification happens after the save commits.
    """

    def __init__(
        self,
        store: AppointmentStore,
        notifier: Notifier,
        locks: DoctorLocks | None = None,
        clock: Clock = system_clock,
        settings: SchedulingSettings | None = None,
    ):
        self.store = store
        self.notifier = notifier
        self.locks = locks or DoctorLocks()
        self.clock = clock
        self.settings = settings or SchedulingSettings()

    async def load(self, appointment_id: str) -> Appointment | None:
        return await call_store(
            "find_by_id",
            self.store.find_by_id(appointment_id),
            self.settings.store_timeout,
        )

    async def persist(self, appointment: Appointment) -> None:
        await call_store("save", self.store.save(appointment), self.settings.store_timeout)

    async def notify_counter_party(
        self,
        appointment: Appointment,
        actor: str,
        kind: NotificationKind,
        note: str = "",
    ) -> bool:
        recipient_id, recipient_type = counter_party(appointment, actor)
        return await self.notifier.notify(
            recipient_id, recipient_type, render_message(kind, appointment, note), kind
        )

    async def run_transition(
        self,
        appointment_id: str,
        action: Action,
        actor: str,
        notes: str = "",
        prepare: Prepare | None = None,
        notification_note: Callable[[Appointment], str] | None = None,
    ) -> Outcome[Appointment]:
        """Load, transition, save and notify.

        Returns:
            Outcome with the saved appointment or the failure
        """
        if not actor or not actor.strip():
            return Outcome.fail(invalid_request("actor", "An actor is required"))

        current = await self.load(appointment_id)
        if current is None:
            return Outcome.fail(not_found("appointment", appointment_id))

        async with self.locks.hold(current.doctor_id):
            # Re-read inside the lock; another request may have changed it
            current = await self.load(appointment_id)
            if current is None:
                return Outcome.fail(not_found("appointment", appointment_id))

            now = self.clock()
            updates, data = prepare(current, now) if prepare else ({}, {})
            outcome = apply_transition(current, action, actor, now, notes, updates, data)
            if not outcome.success:
                logger.info(
                    f"Rejected {action.value} on {appointment_id}: {outcome.error}"
                )
                return outcome

            updated = outcome.unwrap()
            await self.persist(updated)

        logger.info(
            f"Appointment {appointment_id}: {current.status.value} -> "
            f"{updated.status.value} ({action.value} by {actor})"
        )
        note = notification_note(updated) if notification_note else ""
        await self.notify_counter_party(
            updated, actor, TRANSITIONS[action].notification, note
        )
        return Outcome.ok(updated)


class ApprovalWorkflow(LifecycleOperations):
    """Approval authority, patient and doctor actions on an appointment."""

    async def approve(
        self, appointment_id: str, actor: str, notes: str = ""
    ) -> Outcome[Appointment]:
        def prepare(appt: Appointment, now: datetime):
            review = appt.approval_workflow.model_copy(
                update={
                    "reviewed_by": actor,
                    "reviewed_date": now,
                    "approval_status": ApprovalStatus.APPROVED,
                    "notes": notes,
                }
            )
            return {"approval_workflow": review}, {"approval_notes": notes}

        return await self.run_transition(
            appointment_id, Action.APPROVE, actor, notes, prepare
        )

    async def decline(
        self, appointment_id: str, actor: str, reason: str
    ) -> Outcome[Appointment]:
        if not reason or not reason.strip():
            return Outcome.fail(
                invalid_request("reason", "A reason is required to decline an appointment")
            )
        reason = reason.strip()

        def prepare(appt: Appointment, now: datetime):
            review = appt.approval_workflow.model_copy(
                update={
                    "reviewed_by": actor,
                    "reviewed_date": now,
                    "approval_status": ApprovalStatus.DECLINED,
                    "notes": reason,
                }
            )
            return {"approval_workflow": review}, {"decline_reason": reason}

        return await self.run_transition(
            appointment_id,
            Action.DECLINE,
            actor,
            f"Appointment declined. Reason: {reason}",
            prepare,
            lambda _: f"Reason: {reason}",
        )

    async def confirm(self, appointment_id: str, actor: str) -> Outcome[Appointment]:
        return await self.run_transition(
            appointment_id, Action.CONFIRM, actor, "Appointment confirmed"
        )

    async def start(self, appointment_id: str, actor: str) -> Outcome[Appointment]:
        def prepare(appt: Appointment, now: datetime):
            return {"started_at": now}, {"start_time": now.isoformat()}

        return await self.run_transition(
            appointment_id, Action.START, actor, "Appointment started", prepare
        )

    async def complete(
        self,
        appointment_id: str,
        actor: str,
        notes: str = "",
        diagnosis: str = "",
        treatment_plan: str = "",
        follow_up_required: bool = False,
    ) -> Outcome[Appointment]:
        def prepare(appt: Appointment, now: datetime):
            completion = Completion(
                completed_by=actor,
                completed_date=now,
                notes=notes,
                diagnosis=diagnosis,
                treatment_plan=treatment_plan,
                follow_up_required=follow_up_required,
            )
            return {"completion": completion}, {"follow_up_required": follow_up_required}

        return await self.run_transition(
            appointment_id, Action.COMPLETE, actor, notes, prepare
        )

    async def mark_no_show(
        self, appointment_id: str, actor: str, reason: str = ""
    ) -> Outcome[Appointment]:
        def prepare(appt: Appointment, now: datetime):
            return {"no_show_reason": reason}, {"reason": reason}

        return await self.run_transition(
            appointment_id,
            Action.MARK_NO_SHOW,
            actor,
            f"Marked as no-show. Reason: {reason}" if reason else "Marked as no-show",
            prepare,
        )

    async def bulk_approve(
        self, appointment_ids: Iterable[str], actor: str, notes: str = ""
    ) -> list[BulkApprovalItem]:
        """Approve each appointment independently.

        A failure on one ID is recorded in its item and never stops
        the remaining IDs.
        """
        results = []
        for appointment_id in appointment_ids:
            try:
                outcome = await self.approve(appointment_id, actor, notes)
            except DependencyFailureError as e:
                logger.error(f"Bulk approval of {appointment_id} failed: {e}")
                results.append(
                    BulkApprovalItem(
                        appointment_id=appointment_id, success=False, error=e.failure
                    )
                )
                continue
            if outcome.success:
                results.append(
                    BulkApprovalItem(
                        appointment_id=appointment_id,
                        success=True,
                        status=outcome.value.status,
                    )
                )
            else:
                results.append(
                    BulkApprovalItem(
                        appointment_id=appointment_id, success=False, error=outcome.error
                    )
                )
        approved = sum(1 for r in results if r.success)
        logger.info(f"Bulk approval by {actor}: {approved}/{len(results)} approved")
        return results
