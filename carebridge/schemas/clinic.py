from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime

class ClinicBase(BaseModel):
    clinic_name: str
    clinic_address: Optional[str] = None
    clinic_phone_number: Optional[str] = None

class ClinicCreate(ClinicBase):
    pass

class ClinicResponse(ClinicBase):
    id: UUID
    created_at: datetime

    class Config:
        from_attributes = True

class ClinicSummary(BaseModel):
    id: UUID
    clinic_name: str
    clinic_address: Optional[str] = None

    class Config:
        from_attributes = True
