"""clinicbook - Clinic appointment scheduling core.

Slot availability, conflict detection and the appointment lifecycle
(approval, confirmation, rescheduling, cancellation) behind one service.
"""

from clinicbook.availability import covering_slot, generate_slots
from clinicbook.booking import BookingCoordinator, new_appointment
from clinicbook.clock import FixedClock, system_clock
from clinicbook.conflicts import find_conflicts, has_conflict
from clinicbook.directory import InMemoryDirectory, load_directory
from clinicbook.models import (
    Appointment,
    AppointmentStatus,
    BookingFailure,
    FailureKind,
    SchedulingSettings,
)
from clinicbook.outcome import Outcome
from clinicbook.policies import CancellationPolicy, ReschedulingPolicy
from clinicbook.service import SchedulingService, build_service
from clinicbook.storage import InMemoryAppointmentStore, SQLiteAppointmentStore
from clinicbook.workflow import ApprovalWorkflow

__all__ = [
    # Service
    "SchedulingService",
    "build_service",
    # Components
    "ApprovalWorkflow",
    "BookingCoordinator",
    "CancellationPolicy",
    "ReschedulingPolicy",
    "covering_slot",
    "find_conflicts",
    "generate_slots",
    "has_conflict",
    "new_appointment",
    # Models
    "Appointment",
    "AppointmentStatus",
    "BookingFailure",
    "FailureKind",
    "Outcome",
    "SchedulingSettings",
    # Collaborators
    "FixedClock",
    "InMemoryAppointmentStore",
    "InMemoryDirectory",
    "SQLiteAppointmentStore",
    "load_directory",
    "system_clock",
]
