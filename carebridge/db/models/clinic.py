from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.db.types import UTCDateTime, utcnow

class Clinic(SQLModel, table=True):
    __tablename__ = "clinics"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    clinic_name: str
    clinic_address: Optional[str] = None
    clinic_phone_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
