"""AppointmentStore interface and store error types."""

import asyncio
import logging
from collections.abc import Awaitable, Collection
from datetime import datetime
from typing import Protocol, TypeVar, runtime_checkable

from clinicbook.models import Appointment, AppointmentStatus, BookingFailure
from clinicbook.outcome import dependency_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StoreError(Exception):
    """Base class for appointment store errors."""


class SlotTakenError(StoreError):
    """A live appointment already holds this doctor's start time.

    Raised at commit time, so the losing writer of a race is rejected
    even if its conflict check passed.
    """

    def __init__(self, doctor_id: str, date_time: datetime):
        self.doctor_id = doctor_id
        self.date_time = date_time
        super().__init__(f"Slot already taken for doctor {doctor_id} at {date_time.isoformat()}")


class DependencyFailureError(StoreError):
    """The store (or another collaborator) is unreachable or timed out."""

    def __init__(self, failure: BookingFailure):
        self.failure = failure
        super().__init__(str(failure))

    @classmethod
    def for_store(cls, message: str) -> "DependencyFailureError":
        return cls(dependency_failure("appointment_store", message))


@runtime_checkable
class AppointmentStore(Protocol):
    """Persistence collaborator for appointments.

    Implementations must reject a create/save that would give two live
    appointments the same (doctor_id, date_time) with SlotTakenError.
    """

    async def find_conflicting(
        self, doctor_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        """Live appointments of the doctor overlapping [start, end)."""
        ...

    async def create(self, appointment: Appointment) -> None: ...

    async def save(self, appointment: Appointment) -> None: ...

    async def find_by_id(self, appointment_id: str) -> Appointment | None: ...

    async def list_appointments(
        self,
        *,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        statuses: Collection[AppointmentStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        """Appointments matching all given filters, ordered by date_time."""
        ...


async def call_store(operation: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await a store call with a bounded timeout.

    Timeouts surface as DependencyFailureError. Other store errors
    propagate unchanged; the core never retries.

    A timeout cancels only the awaiting side. A store that runs its work
    in a worker thread (SQLiteAppointmentStore) may still commit after
    the caller has been told the call failed, so a timed-out create can
    leave the appointment in place. Callers should re-read before
    retrying; the store's uniqueness check rejects a duplicate live slot.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        logger.error(f"Store call {operation} timed out after {timeout}s")
        raise DependencyFailureError.for_store(
            f"Appointment store did not respond in time ({operation})"
        ) from e
