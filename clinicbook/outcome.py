"""Operation results and failure constructors.

Every expected failure of a scheduling operation is returned as an
Outcome carrying a BookingFailure. Only dependency faults are raised.
"""

from typing import Any, Generic, TypeVar

from clinicbook.models import BookingFailure, FailureKind

T = TypeVar("T")


class Outcome(Generic[T]):
    """Result of a scheduling operation with consistent structure.

    Attributes:
        success: Whether the operation succeeded
        value: The result value (if success)
        error: BookingFailure (if failure)
    """

    __slots__ = ("success", "value", "error")

    def __init__(
        self,
        success: bool,
        value: T | None = None,
        error: BookingFailure | None = None,
    ):
        self.success = success
        self.value = value
        self.error = error

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: BookingFailure) -> "Outcome[T]":
        return cls(success=False, error=error)

    @property
    def kind(self) -> FailureKind | None:
        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise OperationFailedError."""
        if not self.success:
            raise OperationFailedError(self.error)
        return self.value  # type: ignore[return-value]

    def __repr__(self) -> str:
        if self.success:
            return f"Outcome.ok({self.value!r})"
        return f"Outcome.fail({self.error})"


class OperationFailedError(Exception):
    """Raised by Outcome.unwrap() on a failed outcome."""

    def __init__(self, failure: BookingFailure | None):
        self.failure = failure
        super().__init__(str(failure))


# =============================================================================
# Failure constructors
# =============================================================================


def _failure(kind: FailureKind, message: str, **details: Any) -> BookingFailure:
    return BookingFailure(kind=kind, message=message, details=details)


def not_found(entity: str, entity_id: str) -> BookingFailure:
    return _failure(
        FailureKind.NOT_FOUND,
        f"{entity.capitalize()} not found",
        entity=entity,
        id=entity_id,
    )


def invalid_request(field: str, message: str) -> BookingFailure:
    return _failure(FailureKind.INVALID_REQUEST, message, field=field)


def outside_availability(message: str = "Requested time is outside the doctor's availability") -> BookingFailure:
    return _failure(FailureKind.OUTSIDE_AVAILABILITY, message)


def slot_conflict(message: str = "This time slot is no longer available") -> BookingFailure:
    return _failure(FailureKind.SLOT_CONFLICT, message)


def invalid_transition(from_status: str, to_status: str) -> BookingFailure:
    return _failure(
        FailureKind.INVALID_TRANSITION,
        f"Cannot move an appointment from {from_status} to {to_status}",
        **{"from": from_status, "to": to_status},
    )


def reschedule_limit_exceeded(limit: int) -> BookingFailure:
    return _failure(
        FailureKind.RESCHEDULE_LIMIT_EXCEEDED,
        f"Maximum reschedule limit of {limit} reached",
        limit=limit,
    )


def policy_violation(rule: str, message: str) -> BookingFailure:
    return _failure(FailureKind.POLICY_VIOLATION, message, rule=rule)


def dependency_failure(dependency: str, message: str) -> BookingFailure:
    return _failure(FailureKind.DEPENDENCY_FAILURE, message, dependency=dependency)
