from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import UUID

from carebridge.db.types import UTCDateTime, utcnow

class PatientDoctorLink(SQLModel, table=True):
    __tablename__ = "patient_doctors"
    patient_id: UUID = Field(foreign_key="patients.id", primary_key=True)
    doctor_id: UUID = Field(foreign_key="doctors.id", primary_key=True, index=True)
    assigned_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
