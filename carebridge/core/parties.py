from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from carebridge.core.errors import InvalidRequestError


class PartyRole(str, Enum):
    DOCTOR = "doctor"
    CLINIC = "clinic"

    @classmethod
    def parse(cls, value, error: str = "Sender type must be 'doctor' or 'clinic'") -> "PartyRole":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidRequestError(error)


@dataclass(frozen=True)
class PartyRef:
    """One side of a clinic/doctor relationship: exactly one role, one id."""

    role: PartyRole
    id: UUID

    @classmethod
    def from_columns(cls, doctor_id: Optional[UUID], clinic_id: Optional[UUID]) -> "PartyRef":
        if (doctor_id is None) == (clinic_id is None):
            raise ValueError("exactly one of doctor_id / clinic_id must be set")
        if doctor_id is not None:
            return cls(PartyRole.DOCTOR, doctor_id)
        return cls(PartyRole.CLINIC, clinic_id)

    def as_columns(self, prefix: str = "") -> dict:
        """Column values for a (doctor_id, clinic_id) pair, e.g. prefix="sender_"."""
        return {
            f"{prefix}doctor_id": self.id if self.role is PartyRole.DOCTOR else None,
            f"{prefix}clinic_id": self.id if self.role is PartyRole.CLINIC else None,
        }
