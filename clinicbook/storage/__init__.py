"""Appointment store interface and adapters."""

from clinicbook.storage.base import (
    AppointmentStore,
    DependencyFailureError,
    SlotTakenError,
    StoreError,
    call_store,
)
from clinicbook.storage.database import SQLiteAppointmentStore, shutdown_executor
from clinicbook.storage.memory import InMemoryAppointmentStore

__all__ = [
    "AppointmentStore",
    "DependencyFailureError",
    "InMemoryAppointmentStore",
    "SQLiteAppointmentStore",
    "SlotTakenError",
    "StoreError",
    "call_store",
    "shutdown_executor",
]
