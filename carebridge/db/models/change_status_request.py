from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from typing import TYPE_CHECKING
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.db.types import UTCDateTime, utcnow

from .patient import PatientStatus

if TYPE_CHECKING:
    from .patient import Patient

class ChangeStatusRequest(SQLModel, table=True):
    """
    In-flight consent for moving one patient to one status. At most one row
    exists per (patient, status); the transition that both parties agreed on
    deletes it.
    """
    __tablename__ = "change_status_requests"
    __table_args__ = (
        UniqueConstraint("patient_id", "status", name="uq_change_status_request_patient_status"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    patient_id: UUID = Field(foreign_key="patients.id", index=True)
    status: PatientStatus
    has_doctor_accepted: bool = Field(default=False)
    has_clinic_accepted: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    patient: "Patient" = Relationship(back_populates="change_status_requests")
