"""Appointment entity and its nested records.

History and reschedule entries are tuples of frozen models: the
lifecycle code only ever extends them.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AppointmentStatus(str, Enum):
    """Lifecycle states of an appointment."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    DECLINED = "declined"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that still occupy the doctor's calendar
LIVE_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING_APPROVAL,
        AppointmentStatus.APPROVED,
        AppointmentStatus.CONFIRMED,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.DECLINED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    }
)


class AppointmentType(str, Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    ROUTINE_CHECKUP = "routine_checkup"
    SPECIALIST_VISIT = "specialist_visit"
    PROCEDURE = "procedure"


class Priority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class HistoryAction(str, Enum):
    """Events recorded in an appointment's audit log."""

    CREATED = "created"
    APPROVED = "approved"
    DECLINED = "declined"
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    STARTED = "started"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: HistoryAction
    actor: str
    timestamp: datetime
    notes: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class ApprovalWorkflow(BaseModel):
    model_config = ConfigDict(frozen=True)

    requested_date: datetime
    reviewed_by: str | None = None
    reviewed_date: datetime | None = None
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    notes: str = ""


class RescheduleEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    from_date_time: datetime
    to_date_time: datetime
    reason: str = ""
    requested_by: str
    timestamp: datetime


class Rescheduling(BaseModel):
    model_config = ConfigDict(frozen=True)

    reschedule_count: int = Field(default=0, ge=0)
    original_date_time: datetime | None = None
    reschedule_history: tuple[RescheduleEntry, ...] = ()


class Cancellation(BaseModel):
    """Set once when an appointment is cancelled."""

    model_config = ConfigDict(frozen=True)

    cancelled_by: str
    reason: str = ""
    cancelled_date: datetime
    refund_eligible: bool


class Completion(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed_by: str
    completed_date: datetime
    notes: str = ""
    diagnosis: str = ""
    treatment_plan: str = ""
    follow_up_required: bool = False


class Appointment(BaseModel):
    """A booking between a patient and a doctor.

    Built by clinicbook.booking.new_appointment and changed only through
    the workflow and policy operations, each of which returns a new copy.
    """

    appointment_id: str
    patient_id: str
    doctor_id: str
    date_time: datetime
    duration: int = Field(default=30, gt=0)
    status: AppointmentStatus = AppointmentStatus.PENDING_APPROVAL

    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    priority: Priority = Priority.ROUTINE
    reason_for_visit: str = ""
    consultation_fee: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    approval_workflow: ApprovalWorkflow
    rescheduling: Rescheduling = Field(default_factory=Rescheduling)
    cancellation: Cancellation | None = None
    completion: Completion | None = None
    started_at: datetime | None = None
    no_show_reason: str | None = None

    history: tuple[HistoryEntry, ...] = ()
    created_at: datetime
    updated_at: datetime

    @property
    def end_time(self) -> datetime:
        return self.date_time + timedelta(minutes=self.duration)

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class CancellationReceipt(BaseModel):
    """Result of a successful cancellation."""

    appointment_id: str
    refund_eligible: bool
    appointment: Appointment
