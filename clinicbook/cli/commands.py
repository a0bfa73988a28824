"""CLI command implementations.

Contains all cmd_* functions for CLI subcommands. Each command opens
the SQLite store and YAML directory, runs one service operation and
prints the result.
"""

import asyncio
import sys
from argparse import Namespace
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TypeVar

from clinicbook.models import Appointment, AppointmentStatus, BookingFailure, Slot
from clinicbook.notifications import OutboxDispatcher
from clinicbook.outcome import Outcome
from clinicbook.service import SchedulingService, build_service

T = TypeVar("T")


def _run(args: Namespace, operation: Callable[[SchedulingService], Awaitable[T]]) -> T:
    """Run one async operation against a freshly built service."""
    outbox = OutboxDispatcher()
    service = build_service(args.db, args.directory, dispatcher=outbox)
    try:
        return asyncio.run(operation(service))
    finally:
        service.store.close()
        for notification in outbox.sent:
            print(
                f"📨 {notification.recipient_type} {notification.recipient_id}: "
                f"{notification.message}"
            )


def _fail(error: BookingFailure) -> None:
    print(f"❌ {error.kind.value}: {error.message}")
    sys.exit(1)


def _format_appointment(appt: Appointment) -> str:
    when = appt.date_time.strftime("%Y-%m-%d %H:%M")
    return (
        f"{appt.appointment_id}  {when}  {appt.duration:>3} min  "
        f"{appt.status.value:<16} patient={appt.patient_id} doctor={appt.doctor_id}"
    )


def _report(outcome: Outcome, verb: str) -> None:
    if not outcome.success:
        _fail(outcome.error)
    appt = outcome.value
    print(f"✅ {verb}: {appt.appointment_id}")
    print(f"   Status: {appt.status.value}")
    print(f"   When:   {appt.date_time.isoformat()} ({appt.duration} min)")


def _print_slots(doctor_id: str, day: date, slots: list[Slot]) -> None:
    if not slots:
        print(f"No slots for {doctor_id} on {day}")
        return
    print(f"\n📅 {doctor_id} on {day}:")
    for slot in slots:
        mark = "✓" if slot.available else "✗"
        print(f"   {mark} {slot.start_time.strftime('%H:%M')} ({slot.duration_minutes} min)")


def cmd_slots(args: Namespace) -> None:
    """List slots for a doctor on a date, or for --days consecutive dates."""
    outcome = _run(
        args, lambda s: s.get_available_slots_range(args.doctor, args.date, args.days)
    )
    if not outcome.success:
        _fail(outcome.error)

    for day, slots in outcome.value.items():
        _print_slots(args.doctor, day, slots)


def cmd_check(args: Namespace) -> None:
    """Check whether a booking would be accepted, without booking it."""
    outcome = _run(
        args,
        lambda s: s.check_slot(
            args.patient,
            args.doctor,
            args.at,
            args.duration,
            appointment_type=args.type,
            priority=args.priority,
        ),
    )
    if not outcome.success:
        _fail(outcome.error)
    slot = outcome.value
    print(f"✅ Available: {args.doctor} at {args.at.isoformat()}")
    print(f"   Slot: {slot.date} {slot.start_time.strftime('%H:%M')} ({slot.duration_minutes} min)")


def cmd_book(args: Namespace) -> None:
    """Book an appointment."""
    outcome = _run(
        args,
        lambda s: s.book(
            args.patient,
            args.doctor,
            args.at,
            args.duration,
            appointment_type=args.type,
            priority=args.priority,
            reason_for_visit=args.reason,
        ),
    )
    _report(outcome, "Booked")


def cmd_approve(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.approve(args.appointment_id, args.actor, args.notes))
    _report(outcome, "Approved")


def cmd_decline(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.decline(args.appointment_id, args.actor, args.reason))
    _report(outcome, "Declined")


def cmd_confirm(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.confirm(args.appointment_id, args.actor))
    _report(outcome, "Confirmed")


def cmd_start(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.start(args.appointment_id, args.actor))
    _report(outcome, "Started")


def cmd_complete(args: Namespace) -> None:
    outcome = _run(
        args,
        lambda s: s.complete(
            args.appointment_id,
            args.actor,
            args.notes,
            args.diagnosis,
            args.treatment_plan,
            args.follow_up,
        ),
    )
    _report(outcome, "Completed")


def cmd_no_show(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.mark_no_show(args.appointment_id, args.actor, args.reason))
    _report(outcome, "No-show")


def cmd_bulk_approve(args: Namespace) -> None:
    """Approve several pending appointments; exits 1 if any failed."""
    items = _run(
        args, lambda s: s.bulk_approve(args.appointment_ids, args.actor, args.notes)
    )
    failed = 0
    for item in items:
        if item.success:
            print(f"✅ {item.appointment_id}: {item.status.value}")
        else:
            failed += 1
            print(f"❌ {item.appointment_id}: {item.error.kind.value}: {item.error.message}")
    print(f"\n{len(items) - failed}/{len(items)} approved")
    if failed:
        sys.exit(1)


def cmd_reschedule(args: Namespace) -> None:
    outcome = _run(
        args,
        lambda s: s.reschedule(args.appointment_id, args.to, args.reason, args.actor),
    )
    _report(outcome, "Rescheduled")
    if outcome.success:
        print(f"   Reschedules: {outcome.value.rescheduling.reschedule_count}")


def cmd_cancel(args: Namespace) -> None:
    outcome = _run(args, lambda s: s.cancel(args.appointment_id, args.actor, args.reason))
    if not outcome.success:
        _fail(outcome.error)
    receipt = outcome.value
    print(f"✅ Cancelled: {receipt.appointment_id}")
    print(f"   Refund eligible: {'yes' if receipt.refund_eligible else 'no'}")


def cmd_list(args: Namespace) -> None:
    """List appointments for a patient, a doctor or the approval queue."""
    statuses = {AppointmentStatus(args.status)} if args.status else None

    async def query(service: SchedulingService) -> list[Appointment]:
        if args.pending:
            return await service.pending_approvals(args.doctor)
        if args.patient:
            return await service.appointments_for_patient(args.patient, statuses)
        if args.doctor:
            return await service.appointments_for_doctor(args.doctor, args.date, statuses)
        return await service.upcoming_appointments(args.days)

    appointments = _run(args, query)
    if not appointments:
        print("No appointments found")
        return
    print(f"\n📋 {len(appointments)} appointment(s):\n")
    for appt in appointments:
        print(f"   {_format_appointment(appt)}")


def cmd_stats(args: Namespace) -> None:
    stats = _run(args, lambda s: s.statistics(args.doctor, args.patient))
    print(f"\n📊 Appointments: {stats.total}")
    for status, count in stats.by_status.items():
        print(f"   {status:<16} {count}")
    print(f"   Average reschedules: {stats.average_reschedules}")

