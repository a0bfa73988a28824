"""clinicbook CLI - Command-line interface for the scheduling service.

Usage:
    clinicbook slots --doctor DOC001 --date 2024-01-15
    clinicbook slots --doctor DOC001 --date 2024-01-15 --days 7
    clinicbook check --patient PAT001 --doctor DOC001 --at 2024-01-15T10:00
    clinicbook book --patient PAT001 --doctor DOC001 --at 2024-01-15T10:00
    clinicbook approve APT123 --actor MGR001 --notes ok
    clinicbook list --pending
    clinicbook stats --doctor DOC001
"""

import argparse
from datetime import date, datetime

from clinicbook.cli import commands
from clinicbook.cli.commands import (
    cmd_approve,
    cmd_book,
    cmd_bulk_approve,
    cmd_cancel,
    cmd_check,
    cmd_complete,
    cmd_confirm,
    cmd_decline,
    cmd_list,
    cmd_no_show,
    cmd_reschedule,
    cmd_slots,
    cmd_start,
    cmd_stats,
)
from clinicbook.config import DATABASE_PATH, DIRECTORY_PATH, configure_logging
from clinicbook.models import AppointmentStatus, AppointmentType, Priority

__all__ = [
    "commands",
    "main",
    "create_parser",
]


def _add_actor(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("appointment_id", help="Appointment ID")
    parser.add_argument("--actor", "-a", required=True, help="Acting identity for the audit log")


def _add_booking_request(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--patient", "-p", required=True, help="Patient ID")
    parser.add_argument("--doctor", "-d", required=True, help="Doctor ID")
    parser.add_argument(
        "--at", type=datetime.fromisoformat, required=True, help="Start (YYYY-MM-DDTHH:MM)"
    )
    parser.add_argument("--duration", type=int, default=None, help="Minutes")
    parser.add_argument(
        "--type",
        choices=[t.value for t in AppointmentType],
        default=AppointmentType.CONSULTATION.value,
        help="Appointment type",
    )
    parser.add_argument(
        "--priority",
        choices=[p.value for p in Priority],
        default=Priority.ROUTINE.value,
        help="Priority",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser.

    Returns:
        Configured ArgumentParser for testing and main().
    """
    parser = argparse.ArgumentParser(
        description="clinicbook - Clinic appointment scheduling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", default=str(DATABASE_PATH), help="SQLite database path")
    parser.add_argument(
        "--directory", default=str(DIRECTORY_PATH), help="YAML directory of patients and doctors"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Slots command
    slots_parser = subparsers.add_parser("slots", help="Show a doctor's slots for a date")
    slots_parser.add_argument("--doctor", "-d", required=True, help="Doctor ID")
    slots_parser.add_argument(
        "--date", type=date.fromisoformat, required=True, help="Date (YYYY-MM-DD)"
    )
    slots_parser.add_argument(
        "--days", type=int, default=1, help="Number of consecutive days to show"
    )
    slots_parser.set_defaults(func=cmd_slots)

    # Book command
    book_parser = subparsers.add_parser("book", help="Book an appointment")
    _add_booking_request(book_parser)
    book_parser.add_argument("--reason", default="", help="Reason for visit")
    book_parser.set_defaults(func=cmd_book)

    # Check command
    check_parser = subparsers.add_parser(
        "check", help="Check whether a booking would be accepted, without booking"
    )
    _add_booking_request(check_parser)
    check_parser.set_defaults(func=cmd_check)

    # Approve command
    approve_parser = subparsers.add_parser("approve", help="Approve a pending appointment")
    _add_actor(approve_parser)
    approve_parser.add_argument("--notes", default="", help="Approval notes")
    approve_parser.set_defaults(func=cmd_approve)

    # Decline command
    decline_parser = subparsers.add_parser("decline", help="Decline a pending appointment")
    _add_actor(decline_parser)
    decline_parser.add_argument("--reason", required=True, help="Why it was declined")
    decline_parser.set_defaults(func=cmd_decline)

    # Confirm command
    confirm_parser = subparsers.add_parser("confirm", help="Confirm an approved appointment")
    _add_actor(confirm_parser)
    confirm_parser.set_defaults(func=cmd_confirm)

    # Start command
    start_parser = subparsers.add_parser("start", help="Start a confirmed appointment")
    _add_actor(start_parser)
    start_parser.set_defaults(func=cmd_start)

    # Complete command
    complete_parser = subparsers.add_parser("complete", help="Complete an appointment")
    _add_actor(complete_parser)
    complete_parser.add_argument("--notes", default="", help="Visit notes")
    complete_parser.add_argument("--diagnosis", default="", help="Diagnosis")
    complete_parser.add_argument("--treatment-plan", default="", help="Treatment plan")
    complete_parser.add_argument(
        "--follow-up", action="store_true", help="Follow-up visit required"
    )
    complete_parser.set_defaults(func=cmd_complete)

    # No-show command
    no_show_parser = subparsers.add_parser("no-show", help="Mark a confirmed appointment no-show")
    _add_actor(no_show_parser)
    no_show_parser.add_argument("--reason", default="", help="No-show reason")
    no_show_parser.set_defaults(func=cmd_no_show)

    # Bulk approve command
    bulk_parser = subparsers.add_parser(
        "bulk-approve", help="Approve several pending appointments"
    )
    bulk_parser.add_argument("appointment_ids", nargs="+", help="Appointment IDs")
    bulk_parser.add_argument(
        "--actor", "-a", required=True, help="Acting identity for the audit log"
    )
    bulk_parser.add_argument("--notes", default="", help="Approval notes")
    bulk_parser.set_defaults(func=cmd_bulk_approve)

    # Cancel command
    cancel_parser = subparsers.add_parser("cancel", help="Cancel an appointment")
    _add_actor(cancel_parser)
    cancel_parser.add_argument("--reason", default="", help="Cancellation reason")
    cancel_parser.set_defaults(func=cmd_cancel)

    # Reschedule command
    reschedule_parser = subparsers.add_parser("reschedule", help="Move an appointment")
    _add_actor(reschedule_parser)
    reschedule_parser.add_argument(
        "--to", type=datetime.fromisoformat, required=True, help="New start (YYYY-MM-DDTHH:MM)"
    )
    reschedule_parser.add_argument("--reason", default="", help="Reschedule reason")
    reschedule_parser.set_defaults(func=cmd_reschedule)

    # List command
    list_parser = subparsers.add_parser("list", help="List appointments")
    list_parser.add_argument("--patient", "-p", help="Patient ID (newest first)")
    list_parser.add_argument("--doctor", "-d", help="Doctor ID")
    list_parser.add_argument("--date", type=date.fromisoformat, help="Day for --doctor")
    list_parser.add_argument(
        "--status", choices=[s.value for s in AppointmentStatus], help="Filter by status"
    )
    list_parser.add_argument(
        "--pending", action="store_true", help="Show the approval queue"
    )
    list_parser.add_argument(
        "--days", type=int, default=7, help="Upcoming window when no filter is given"
    )
    list_parser.set_defaults(func=cmd_list)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Appointment statistics")
    stats_parser.add_argument("--doctor", "-d", help="Doctor ID")
    stats_parser.add_argument("--patient", "-p", help="Patient ID")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main():
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    configure_logging()
    args.func(args)


if __name__ == "__main__":
    main()
