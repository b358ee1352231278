from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from carebridge.api.deps import Caller, acting_party, get_broadcaster, get_current_caller
from carebridge.core.broadcast import Broadcaster
from carebridge.core.parties import PartyRole
from carebridge.db.session import get_session
from carebridge.schemas.chat import (
    ChatCreate,
    ChatResponse,
    MarkReadRequest,
    MessageCreate,
    MessageOrder,
    MessagePage,
    MessageReadResponse,
    MessageResponse,
)
from carebridge.services.chat_service import ChatService
from carebridge.services.message_service import MessageService

router = APIRouter()

async def get_chat_service(session: AsyncSession = Depends(get_session)) -> ChatService:
    return ChatService(session)

async def get_message_service(
    session: AsyncSession = Depends(get_session),
    broadcaster: Broadcaster = Depends(get_broadcaster)
) -> MessageService:
    return MessageService(session, broadcaster)

@router.post("/", response_model=ChatResponse)
async def get_or_create_chat(
    payload: ChatCreate,
    response: Response,
    caller: Caller = Depends(get_current_caller),
    service: ChatService = Depends(get_chat_service)
):
    # The caller fills its own side of the triple; the body names the other
    if caller.role is PartyRole.CLINIC:
        clinic_id = acting_party(caller, payload.clinic_id).id
        doctor_id = payload.doctor_id
    else:
        doctor_id = acting_party(caller, payload.doctor_id).id
        clinic_id = payload.clinic_id

    chat = await service.get_or_create_chat(doctor_id, clinic_id, payload.patient_id)
    response.status_code = status.HTTP_201_CREATED if chat.created else status.HTTP_200_OK
    return chat

@router.get("/patient/{patient_id}", response_model=List[ChatResponse])
async def read_patient_chats(
    patient_id: UUID,
    service: ChatService = Depends(get_chat_service)
):
    return await service.list_patient_chats(patient_id)

@router.get("/{chat_id}/messages", response_model=MessagePage)
async def read_messages(
    chat_id: UUID,
    page: int = 1,
    limit: Optional[int] = None,
    order: MessageOrder = MessageOrder.ASCENDING,
    service: MessageService = Depends(get_message_service)
):
    return await service.get_messages(chat_id, page, limit, order)

@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    chat_id: UUID,
    payload: MessageCreate,
    caller: Caller = Depends(get_current_caller),
    service: MessageService = Depends(get_message_service)
):
    sender = acting_party(caller, payload.sender_id, payload.sender_type)
    return await service.send_message(
        chat_id,
        payload.content,
        sender.id,
        sender.role,
        payload.attachments,
    )

@router.patch("/messages/{message_id}/read", response_model=MessageReadResponse)
async def mark_message_as_read(
    message_id: UUID,
    payload: Optional[MarkReadRequest] = None,
    caller: Caller = Depends(get_current_caller),
    service: MessageService = Depends(get_message_service)
):
    reader = acting_party(caller, payload.reader_id if payload else None)
    return await service.mark_message_as_read(message_id, reader.id)
