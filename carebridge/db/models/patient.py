from sqlmodel import SQLModel, Field, Relationship
from typing import Optional, List, TYPE_CHECKING
from datetime import date, datetime
from enum import Enum
from uuid import UUID, uuid4

from carebridge.db.types import UTCDateTime, utcnow

from .patient_doctor_link import PatientDoctorLink

if TYPE_CHECKING:
    from .doctor import Doctor
    from .change_status_request import ChangeStatusRequest

class PatientStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

class Patient(SQLModel, table=True):
    __tablename__ = "patients"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    clinic_id: UUID = Field(foreign_key="clinics.id", index=True)
    name: str
    phone_number: str
    gender: str
    date_of_birth: date
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: PatientStatus = Field(default=PatientStatus.ACTIVE, index=True)
    medical_procedure: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    assigned_doctors: List["Doctor"] = Relationship(link_model=PatientDoctorLink)
    change_status_requests: List["ChangeStatusRequest"] = Relationship(back_populates="patient")
