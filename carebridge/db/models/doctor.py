from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.db.types import UTCDateTime, utcnow

class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    full_name: str
    specialization: Optional[str] = None
    phone_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
