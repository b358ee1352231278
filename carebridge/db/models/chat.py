from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, UniqueConstraint
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.core.parties import PartyRef
from carebridge.db.types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from .patient import Patient
    from .clinic import Clinic
    from .doctor import Doctor

class Chat(SQLModel, table=True):
    __tablename__ = "chats"
    # One chat per (patient, clinic, doctor); get-or-create relies on it
    __table_args__ = (
        UniqueConstraint("patient_id", "clinic_id", "doctor_id", name="uq_chat_patient_clinic_doctor"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    patient_id: UUID = Field(foreign_key="patients.id", index=True)
    clinic_id: UUID = Field(foreign_key="clinics.id")
    doctor_id: UUID = Field(foreign_key="doctors.id")
    last_message_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    patient: "Patient" = Relationship()
    participants: List["ChatParticipant"] = Relationship(back_populates="chat")

class ChatParticipant(SQLModel, table=True):
    __tablename__ = "chat_participants"
    __table_args__ = (
        CheckConstraint("(clinic_id IS NULL) <> (doctor_id IS NULL)", name="ck_chat_participant_one_party"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    chat_id: UUID = Field(foreign_key="chats.id", index=True)
    clinic_id: Optional[UUID] = Field(default=None, foreign_key="clinics.id")
    doctor_id: Optional[UUID] = Field(default=None, foreign_key="doctors.id")
    joined_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    chat: "Chat" = Relationship(back_populates="participants")
    clinic: Optional["Clinic"] = Relationship()
    doctor: Optional["Doctor"] = Relationship()

    @property
    def party(self) -> PartyRef:
        return PartyRef.from_columns(self.doctor_id, self.clinic_id)
