from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import func, select

from carebridge.core.errors import InvalidRequestError, NotFoundError
from carebridge.core.logger import get_logger
from carebridge.db.models import Chat, ChatParticipant, Message, Patient
from carebridge.db.session import run_in_transaction
from carebridge.schemas.chat import ChatResponse, ParticipantResponse
from carebridge.schemas.patient import PatientSummary
from carebridge.services.assignment_service import AssignmentService

logger = get_logger("chats")

def chat_query():
    return (
        select(Chat)
        .options(
            selectinload(Chat.participants).selectinload(ChatParticipant.clinic),
            selectinload(Chat.participants).selectinload(ChatParticipant.doctor),
            selectinload(Chat.patient),
        )
        .execution_options(populate_existing=True)
    )

class ChatService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.assignments = AssignmentService(session)

    async def get_or_create_chat(
        self,
        doctor_id: Optional[UUID],
        clinic_id: Optional[UUID],
        patient_id: Optional[UUID],
    ) -> ChatResponse:
        if not doctor_id or not clinic_id or not patient_id:
            raise InvalidRequestError("Doctor ID, Clinic ID, and Patient ID are required")

        await self.assignments.get_owned_patient(patient_id, clinic_id)
        # Assignment is what lets a doctor into a patient's chat at all
        await self.assignments.ensure_assigned(doctor_id, patient_id)

        async def find_or_create() -> Tuple[UUID, bool]:
            existing_id = await self._find_chat_id(patient_id, clinic_id, doctor_id)
            if existing_id:
                return existing_id, False

            # Losing a creation race raises on the unique triple; the retry
            # then finds the winner's chat
            chat = Chat(patient_id=patient_id, clinic_id=clinic_id, doctor_id=doctor_id)
            self.session.add(chat)
            self.session.add_all([
                ChatParticipant(chat_id=chat.id, clinic_id=clinic_id),
                ChatParticipant(chat_id=chat.id, doctor_id=doctor_id),
            ])
            await self.session.flush()
            return chat.id, True

        chat_id, created = await run_in_transaction(self.session, find_or_create)
        if created:
            logger.info(f"Chat {chat_id} created for patient {patient_id} (clinic {clinic_id}, doctor {doctor_id})")
        return await self.get_chat(chat_id, created=created)

    async def get_chat(self, chat_id: UUID, created: bool = False) -> ChatResponse:
        result = await self.session.execute(chat_query().where(Chat.id == chat_id))
        chat = result.scalars().first()
        if not chat:
            raise NotFoundError.resource("Chat")

        counts = await self._message_counts([chat.id])
        return self._to_response(chat, counts.get(chat.id, 0), created)

    async def list_patient_chats(self, patient_id: UUID) -> List[ChatResponse]:
        patient = await self.session.get(Patient, patient_id)
        if not patient:
            raise NotFoundError.resource("Patient")

        stmt = (
            chat_query()
            .where(Chat.patient_id == patient_id)
            .order_by(func.coalesce(Chat.last_message_at, Chat.created_at).desc())
        )
        result = await self.session.execute(stmt)
        chats = result.scalars().all()

        counts = await self._message_counts([chat.id for chat in chats])
        return [self._to_response(chat, counts.get(chat.id, 0)) for chat in chats]

    async def _find_chat_id(self, patient_id: UUID, clinic_id: UUID, doctor_id: UUID) -> Optional[UUID]:
        stmt = select(Chat.id).where(
            Chat.patient_id == patient_id,
            Chat.clinic_id == clinic_id,
            Chat.doctor_id == doctor_id,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _message_counts(self, chat_ids: List[UUID]) -> Dict[UUID, int]:
        if not chat_ids:
            return {}
        stmt = (
            select(Message.chat_id, func.count(Message.id))
            .where(Message.chat_id.in_(chat_ids))
            .group_by(Message.chat_id)
        )
        result = await self.session.execute(stmt)
        return {chat_id: count for chat_id, count in result.all()}

    @staticmethod
    def _to_response(chat: Chat, message_count: int, created: bool = False) -> ChatResponse:
        return ChatResponse(
            id=chat.id,
            patient_id=chat.patient_id,
            clinic_id=chat.clinic_id,
            doctor_id=chat.doctor_id,
            last_message_at=chat.last_message_at,
            created_at=chat.created_at,
            participants=[ParticipantResponse.model_validate(p) for p in chat.participants],
            patient=PatientSummary.model_validate(chat.patient),
            message_count=message_count,
            created=created,
        )
