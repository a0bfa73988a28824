"""Request models for the scheduling API.

Response bodies reuse the core models (Appointment, Slot,
CancellationReceipt, ...) directly.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# =============================================================================
# Request Models
# =============================================================================


class CheckSlotRequest(BaseModel):
    """Request to check whether a booking would be accepted."""

    patient_id: str
    doctor_id: str
    date_time: datetime
    duration: int | None = Field(default=None, description="Minutes; defaults from settings")
    appointment_type: str = "consultation"
    priority: str = "routine"


class BookRequest(CheckSlotRequest):
    """Request to book an appointment."""

    reason_for_visit: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class ActorRequest(BaseModel):
    """Request body for actions that only need the acting identity."""

    actor: str


class ApproveRequest(ActorRequest):
    notes: str = ""


class DeclineRequest(ActorRequest):
    reason: str


class CompleteRequest(ActorRequest):
    notes: str = ""
    diagnosis: str = ""
    treatment_plan: str = ""
    follow_up_required: bool = False


class NoShowRequest(ActorRequest):
    reason: str = ""


class RescheduleRequest(ActorRequest):
    new_date_time: datetime
    reason: str = ""


class CancelRequest(ActorRequest):
    reason: str = ""


class BulkApproveRequest(ActorRequest):
    appointment_ids: list[str] = Field(min_length=1)
    notes: str = ""
