"""Pydantic models for operation failures and scheduling settings.

Failures are returned to callers as data, so every expected
business outcome has a stable kind plus a readable message.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from clinicbook import config

# =============================================================================
# Failure Types
# =============================================================================


class FailureKind(str, Enum):
    """Kinds of failure a scheduling operation can report."""

    NOT_FOUND = "not_found"  # Patient, doctor or appointment does not resolve
    INVALID_REQUEST = "invalid_request"  # Missing field or value outside enumeration
    OUTSIDE_AVAILABILITY = "outside_availability"  # Not inside any generated slot
    SLOT_CONFLICT = "slot_conflict"  # Overlaps a live appointment
    INVALID_TRANSITION = "invalid_transition"  # Action not allowed from current status
    RESCHEDULE_LIMIT_EXCEEDED = "reschedule_limit_exceeded"
    POLICY_VIOLATION = "policy_violation"  # Time-based business rule
    DEPENDENCY_FAILURE = "dependency_failure"  # Store unreachable or timed out


class BookingFailure(BaseModel):
    """Structured failure information for scheduling operations."""

    kind: FailureKind = Field(description="Category of failure")
    message: str = Field(description="Human-readable reason")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Kind-specific context (entity, field, from/to, rule)"
    )

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


# =============================================================================
# Settings
# =============================================================================


class SchedulingSettings(BaseModel):
    """Policy knobs injected into the scheduling components.

    Defaults come from clinicbook.config so a service built without
    arguments follows the environment, while tests can pin values.
    """

    slot_minutes: int = Field(default=config.SLOT_MINUTES, gt=0)
    default_duration: int = Field(default=config.DEFAULT_DURATION, gt=0)
    allowed_durations: tuple[int, ...] = Field(default=config.ALLOWED_DURATIONS)
    max_reschedules: int = Field(default=config.MAX_RESCHEDULES, ge=0)
    refund_window_hours: float = Field(default=config.REFUND_WINDOW_HOURS, ge=0)
    store_timeout: float = Field(default=config.STORE_TIMEOUT, gt=0)
    notify_timeout: float = Field(default=config.NOTIFY_TIMEOUT, gt=0)

    @field_validator("allowed_durations")
    @classmethod
    def _durations_positive(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if not value or any(d <= 0 for d in value):
            raise ValueError("allowed_durations must be a non-empty set of positive minutes")
        return tuple(sorted(set(value)))
