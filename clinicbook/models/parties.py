"""Parties that take part in an appointment.

Roles form a closed set. Each variant carries only its own fields and
all of them satisfy the Identity and Contactable protocols.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Protocol, Union, runtime_checkable

from pydantic import BaseModel, Field, TypeAdapter

from clinicbook.models.availability import WeeklyAvailability


class Role(str, Enum):
    """Party roles known to the scheduling core."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    AUTHORITY = "authority"


class UnknownRoleError(LookupError):
    """Raised when a role string or value has no registered party type."""


@runtime_checkable
class Identity(Protocol):
    id: str
    name: str
    role: str


@runtime_checkable
class Contactable(Protocol):
    email: str | None
    phone: str | None


class Patient(BaseModel):
    """A person requesting care."""

    role: Literal["patient"] = "patient"
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None


class Doctor(BaseModel):
    """A clinician with a recurring weekly schedule."""

    role: Literal["doctor"] = "doctor"
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    specialization: str | None = None
    department: str | None = None
    consultation_fee: float = Field(default=150.0, ge=0)
    availability: WeeklyAvailability = Field(default_factory=WeeklyAvailability)


class ApprovalAuthority(BaseModel):
    """Staff member allowed to approve or decline pending appointments."""

    role: Literal["authority"] = "authority"
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    department: str | None = None


Party = Annotated[
    Union[Patient, Doctor, ApprovalAuthority],
    Field(discriminator="role"),
]

PARTY_TYPES: dict[Role, type[BaseModel]] = {
    Role.PATIENT: Patient,
    Role.DOCTOR: Doctor,
    Role.AUTHORITY: ApprovalAuthority,
}

_party_adapter = TypeAdapter(Party)


def party_type_for(role: Role | str) -> type[BaseModel]:
    """Look up the model class for a role.

    Raises:
        UnknownRoleError: If the role is not one of Role's members
    """
    try:
        key = Role(role)
    except ValueError as e:
        raise UnknownRoleError(f"Unknown party role: {role!r}") from e
    return PARTY_TYPES[key]


def parse_party(data: dict[str, Any]) -> Patient | Doctor | ApprovalAuthority:
    """Validate a raw mapping into the matching party variant.

    Raises:
        UnknownRoleError: If the mapping's role is missing or unknown
    """
    party_type_for(data.get("role", ""))
    return _party_adapter.validate_python(data)
