from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, Column, Index, Text
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from uuid import UUID, uuid4

from carebridge.core.parties import PartyRef
from carebridge.db.types import UTCDateTime, utcnow

if TYPE_CHECKING:
    from .chat import Chat
    from .clinic import Clinic
    from .doctor import Doctor

class Message(SQLModel, table=True):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("(sender_clinic_id IS NULL) <> (sender_doctor_id IS NULL)", name="ck_message_one_sender"),
        Index("ix_messages_chat_created", "chat_id", "created_at"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    chat_id: UUID = Field(foreign_key="chats.id")
    content: str = Field(sa_column=Column(Text, nullable=False))
    sender_doctor_id: Optional[UUID] = Field(default=None, foreign_key="doctors.id")
    sender_clinic_id: Optional[UUID] = Field(default=None, foreign_key="clinics.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    chat: "Chat" = Relationship()
    sender_doctor: Optional["Doctor"] = Relationship()
    sender_clinic: Optional["Clinic"] = Relationship()
    attachments: List["Attachment"] = Relationship(back_populates="message")

    @property
    def sender(self) -> PartyRef:
        return PartyRef.from_columns(self.sender_doctor_id, self.sender_clinic_id)

class Attachment(SQLModel, table=True):
    __tablename__ = "attachments"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    message_id: UUID = Field(foreign_key="messages.id", index=True)
    filename: str
    url: str
    type: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    message: "Message" = Relationship(back_populates="attachments")
