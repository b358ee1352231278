import math
from enum import Enum
from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from carebridge.core.parties import PartyRole
from carebridge.schemas.clinic import ClinicSummary
from carebridge.schemas.doctor import DoctorSummary
from carebridge.schemas.patient import PatientSummary

class ChatCreate(BaseModel):
    doctor_id: Optional[UUID] = None
    clinic_id: Optional[UUID] = None
    patient_id: Optional[UUID] = None

class ParticipantResponse(BaseModel):
    id: UUID
    clinic_id: Optional[UUID] = None
    doctor_id: Optional[UUID] = None
    joined_at: datetime
    clinic: Optional[ClinicSummary] = None
    doctor: Optional[DoctorSummary] = None

    class Config:
        from_attributes = True

class ChatResponse(BaseModel):
    id: UUID
    patient_id: UUID
    clinic_id: UUID
    doctor_id: UUID
    last_message_at: Optional[datetime] = None
    created_at: datetime
    participants: List[ParticipantResponse]
    patient: PatientSummary
    message_count: int = 0
    created: bool = False

class AttachmentCreate(BaseModel):
    filename: str
    url: str
    type: str

class AttachmentResponse(AttachmentCreate):
    id: UUID
    message_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True

class MessageCreate(BaseModel):
    content: Optional[str] = None
    sender_id: Optional[UUID] = None
    sender_type: Optional[str] = None
    attachments: List[AttachmentCreate] = []

class MessageResponse(BaseModel):
    id: UUID
    chat_id: UUID
    content: str
    sender_type: PartyRole
    sender_id: UUID
    sender_doctor_id: Optional[UUID] = None
    sender_clinic_id: Optional[UUID] = None
    sender_name: Optional[str] = None
    sender_doctor: Optional[DoctorSummary] = None
    sender_clinic: Optional[ClinicSummary] = None
    attachments: List[AttachmentResponse] = []
    created_at: datetime

    @classmethod
    def from_message(cls, message) -> "MessageResponse":
        """Build from a Message loaded with its attachments and sender rows."""
        sender = message.sender
        sender_doctor = message.sender_doctor
        sender_clinic = message.sender_clinic
        if sender.role is PartyRole.DOCTOR:
            sender_name = sender_doctor.full_name if sender_doctor else None
        else:
            sender_name = sender_clinic.clinic_name if sender_clinic else None

        return cls(
            id=message.id,
            chat_id=message.chat_id,
            content=message.content,
            sender_type=sender.role,
            sender_id=sender.id,
            sender_doctor_id=message.sender_doctor_id,
            sender_clinic_id=message.sender_clinic_id,
            sender_name=sender_name,
            sender_doctor=DoctorSummary.model_validate(sender_doctor) if sender_doctor else None,
            sender_clinic=ClinicSummary.model_validate(sender_clinic) if sender_clinic else None,
            attachments=[AttachmentResponse.model_validate(a) for a in message.attachments],
            created_at=message.created_at,
        )

class MessageOrder(str, Enum):
    # Oldest first across the whole history
    ASCENDING = "asc"
    # Newest window first, returned oldest-to-newest within the page
    RECENT = "recent"

class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
            has_next=page * limit < total,
            has_prev=page > 1,
        )

class MessagePage(BaseModel):
    messages: List[MessageResponse]
    pagination: PaginationMeta

class MarkReadRequest(BaseModel):
    reader_id: Optional[UUID] = None

class MessageReadResponse(BaseModel):
    message: MessageResponse
    is_own_message: bool
    detail: str
