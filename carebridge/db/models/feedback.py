from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.db.types import UTCDateTime, utcnow

class Feedback(SQLModel, table=True):
    __tablename__ = "feedbacks"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    patient_id: UUID = Field(foreign_key="patients.id", index=True)
    feedback: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
