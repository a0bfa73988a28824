"""Pydantic models for the scheduling core."""

from clinicbook.models.appointment import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
    ApprovalStatus,
    ApprovalWorkflow,
    Cancellation,
    CancellationReceipt,
    Completion,
    HistoryAction,
    HistoryEntry,
    Priority,
    RescheduleEntry,
    Rescheduling,
)
from clinicbook.models.availability import DayWindow, Slot, Weekday, WeeklyAvailability
from clinicbook.models.parties import (
    PARTY_TYPES,
    ApprovalAuthority,
    Contactable,
    Doctor,
    Identity,
    Party,
    Patient,
    Role,
    UnknownRoleError,
    parse_party,
    party_type_for,
)
from clinicbook.models.schemas import BookingFailure, FailureKind, SchedulingSettings

__all__ = [
    # Appointment
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "ApprovalStatus",
    "ApprovalWorkflow",
    "Cancellation",
    "CancellationReceipt",
    "Completion",
    "HistoryAction",
    "HistoryEntry",
    "LIVE_STATUSES",
    "Priority",
    "RescheduleEntry",
    "Rescheduling",
    "TERMINAL_STATUSES",
    # Availability
    "DayWindow",
    "Slot",
    "Weekday",
    "WeeklyAvailability",
    # Parties
    "ApprovalAuthority",
    "Contactable",
    "Doctor",
    "Identity",
    "PARTY_TYPES",
    "Party",
    "Patient",
    "Role",
    "UnknownRoleError",
    "parse_party",
    "party_type_for",
    # Failures and settings
    "BookingFailure",
    "FailureKind",
    "SchedulingSettings",
]
