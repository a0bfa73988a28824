"""Serialization of appointments for the SQLite store."""

from datetime import datetime

import orjson

from clinicbook.models import Appointment


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO timestamp so stored values sort and compare as text."""
    return value.isoformat(timespec="microseconds")


def dump_appointment(appointment: Appointment) -> str:
    """Serialize an appointment document to a JSON string."""
    return orjson.dumps(appointment.model_dump(mode="json")).decode()


def load_appointment(raw: str | bytes) -> Appointment:
    """Deserialize an appointment document."""
    return Appointment.model_validate(orjson.loads(raw))


__all__ = [
    "dump_appointment",
    "format_timestamp",
    "load_appointment",
]
