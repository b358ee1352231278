from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from carebridge.db.models.patient import PatientStatus
from carebridge.schemas.doctor import DoctorSummary

class PatientBase(BaseModel):
    name: str
    phone_number: str
    gender: str
    date_of_birth: date
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    medical_procedure: Optional[str] = None

class PatientCreate(PatientBase):
    clinic_id: UUID

class PatientUpdate(BaseModel):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    medical_procedure: Optional[str] = None
    clinic_id: Optional[UUID] = None

class ChangeStatusRequestResponse(BaseModel):
    id: UUID
    patient_id: UUID
    status: PatientStatus
    has_doctor_accepted: bool
    has_clinic_accepted: bool
    created_at: datetime

    class Config:
        from_attributes = True

class PatientResponse(PatientBase):
    id: UUID
    clinic_id: UUID
    status: PatientStatus
    created_at: datetime
    updated_at: datetime
    assigned_doctors: List[DoctorSummary] = []
    change_status_requests: List[ChangeStatusRequestResponse] = []

    class Config:
        from_attributes = True

class PatientSummary(BaseModel):
    id: UUID
    name: str
    phone_number: str
    status: PatientStatus

    class Config:
        from_attributes = True

class AssignDoctorRequest(BaseModel):
    doctor_id: UUID

class StatusUpdate(BaseModel):
    # Kept as a plain string so an unknown status is a domain validation error
    status: str

class StatusChangeResponse(BaseModel):
    applied: bool
    message: str
    patient: Optional[PatientResponse] = None
    request: Optional[ChangeStatusRequestResponse] = None

class FeedbackCreate(BaseModel):
    feedback: Optional[str] = None

class FeedbackResponse(BaseModel):
    id: UUID
    patient_id: UUID
    feedback: str
    created_at: datetime

    class Config:
        from_attributes = True
