"""Patient and doctor directories.

The scheduling core only needs to resolve IDs. The in-memory directory
can be loaded from a YAML file:

    patients:
      - id: PAT001
        name: Jane Doe
    doctors:
      - id: DOC001
        name: Dr. Smith
        consultation_fee: 120
        availability:
          monday: {start: "09:00", end: "17:00"}
          tuesday: {start: "09:00", end: "12:00", is_available: false}
    authorities:
      - id: MGR001
        name: Alex Manager
"""

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from clinicbook.models import ApprovalAuthority, Doctor, Patient, Role, parse_party

logger = logging.getLogger(__name__)

# YAML section name for each role
_SECTIONS: dict[Role, str] = {
    Role.PATIENT: "patients",
    Role.DOCTOR: "doctors",
    Role.AUTHORITY: "authorities",
}


class DirectoryError(ValueError):
    """Raised when a directory file cannot be loaded."""


@runtime_checkable
class PatientDirectory(Protocol):
    async def resolve_patient(self, patient_id: str) -> Patient | None: ...


@runtime_checkable
class DoctorDirectory(Protocol):
    async def resolve_doctor(self, doctor_id: str) -> Doctor | None: ...


class InMemoryDirectory:
    """Dictionary-backed PatientDirectory and DoctorDirectory."""

    def __init__(
        self,
        patients: Iterable[Patient] = (),
        doctors: Iterable[Doctor] = (),
        authorities: Iterable[ApprovalAuthority] = (),
    ):
        self.patients = {p.id: p for p in patients}
        self.doctors = {d.id: d for d in doctors}
        self.authorities = {a.id: a for a in authorities}

    async def resolve_patient(self, patient_id: str) -> Patient | None:
        return self.patients.get(patient_id)

    async def resolve_doctor(self, doctor_id: str) -> Doctor | None:
        return self.doctors.get(doctor_id)

    async def resolve_authority(self, authority_id: str) -> ApprovalAuthority | None:
        return self.authorities.get(authority_id)

    def add(self, party: Patient | Doctor | ApprovalAuthority) -> None:
        """Register a party under its role."""
        if isinstance(party, Patient):
            self.patients[party.id] = party
        elif isinstance(party, Doctor):
            self.doctors[party.id] = party
        elif isinstance(party, ApprovalAuthority):
            self.authorities[party.id] = party
        else:
            raise TypeError(f"Unsupported party type: {type(party).__name__}")


def parse_directory(data: dict[str, Any] | None) -> InMemoryDirectory:
    """Build a directory from a parsed YAML mapping.

    Raises:
        DirectoryError: On malformed sections or invalid entries
    """
    directory = InMemoryDirectory()
    if not data:
        return directory
    if not isinstance(data, dict):
        raise DirectoryError("Directory must be a mapping of role sections")

    for role, section in _SECTIONS.items():
        entries = data.get(section) or []
        if not isinstance(entries, list):
            raise DirectoryError(f"Section '{section}' must be a list")
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise DirectoryError(f"{section}[{index}] must be a mapping")
            try:
                party = parse_party({**entry, "role": role.value})
            except ValidationError as e:
                raise DirectoryError(f"Invalid entry {section}[{index}]: {e}") from e
            directory.add(party)

    logger.debug(
        f"Directory loaded: {len(directory.patients)} patients, "
        f"{len(directory.doctors)} doctors, {len(directory.authorities)} authorities"
    )
    return directory


def load_directory(path: str | Path) -> InMemoryDirectory:
    """Load a directory from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        DirectoryError: If the content is invalid
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Directory file not found: {path}")

    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise DirectoryError(f"Invalid YAML in {path}: {e}") from e

    return parse_directory(data)
