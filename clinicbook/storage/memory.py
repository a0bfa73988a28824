"""In-memory AppointmentStore."""

from collections.abc import Collection
from datetime import datetime

from clinicbook.models import LIVE_STATUSES, Appointment, AppointmentStatus
from clinicbook.storage.base import DependencyFailureError, SlotTakenError


class InMemoryAppointmentStore:
    """Dict-backed store for tests, the CLI demo and single-process use.

    Keeps its own copies so callers cannot change stored state by
    mutating an object they were handed.
    """

    def __init__(self, appointments: Collection[Appointment] = ()):
        self._appointments: dict[str, Appointment] = {}
        for appt in appointments:
            self._check_unique(appt)
            self._appointments[appt.appointment_id] = appt.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._appointments)

    def _check_unique(self, appointment: Appointment) -> None:
        if appointment.status not in LIVE_STATUSES:
            return
        for other in self._appointments.values():
            if (
                other.appointment_id != appointment.appointment_id
                and other.doctor_id == appointment.doctor_id
                and other.date_time == appointment.date_time
                and other.status in LIVE_STATUSES
            ):
                raise SlotTakenError(appointment.doctor_id, appointment.date_time)

    async def find_conflicting(
        self, doctor_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        return [
            appt.model_copy(deep=True)
            for appt in sorted(self._appointments.values(), key=lambda a: a.date_time)
            if appt.doctor_id == doctor_id
            and appt.status in LIVE_STATUSES
            and appt.date_time < end
            and appt.end_time > start
        ]

    async def create(self, appointment: Appointment) -> None:
        if appointment.appointment_id in self._appointments:
            raise DependencyFailureError.for_store(
                f"Appointment {appointment.appointment_id} already exists in the store"
            )
        self._check_unique(appointment)
        self._appointments[appointment.appointment_id] = appointment.model_copy(deep=True)

    async def save(self, appointment: Appointment) -> None:
        if appointment.appointment_id not in self._appointments:
            raise DependencyFailureError.for_store(
                f"Appointment {appointment.appointment_id} does not exist in the store"
            )
        self._check_unique(appointment)
        self._appointments[appointment.appointment_id] = appointment.model_copy(deep=True)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        appt = self._appointments.get(appointment_id)
        return appt.model_copy(deep=True) if appt else None

    async def list_appointments(
        self,
        *,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        statuses: Collection[AppointmentStatus] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        result = []
        for appt in sorted(self._appointments.values(), key=lambda a: a.date_time):
            if doctor_id and appt.doctor_id != doctor_id:
                continue
            if patient_id and appt.patient_id != patient_id:
                continue
            if statuses is not None and appt.status not in statuses:
                continue
            if start and appt.date_time < start:
                continue
            if end and appt.date_time >= end:
                continue
            result.append(appt.model_copy(deep=True))
        return result
