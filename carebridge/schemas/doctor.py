from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime

class DoctorBase(BaseModel):
    full_name: str
    specialization: Optional[str] = None
    phone_number: Optional[str] = None

class DoctorCreate(DoctorBase):
    pass

class DoctorResponse(DoctorBase):
    id: UUID
    created_at: datetime

    class Config:
        from_attributes = True

class DoctorSummary(BaseModel):
    id: UUID
    full_name: str
    specialization: Optional[str] = None

    class Config:
        from_attributes = True
