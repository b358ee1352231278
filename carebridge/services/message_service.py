import asyncio
from datetime import datetime, timedelta
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import func, select

from carebridge.core.broadcast import Broadcaster, message_event
from carebridge.core.config import settings
from carebridge.core.errors import InvalidRequestError, NotFoundError
from carebridge.core.logger import get_logger
from carebridge.core.parties import PartyRef, PartyRole
from carebridge.db.models import Attachment, Chat, ChatParticipant, Message
from carebridge.db.session import run_in_transaction
from carebridge.db.types import utcnow
from carebridge.schemas.chat import (
    AttachmentCreate,
    MessageOrder,
    MessagePage,
    MessageReadResponse,
    MessageResponse,
    PaginationMeta,
)

logger = get_logger("messages")

def next_message_time(last_message_at: Optional[datetime]) -> datetime:
    """Now, or just after the chat's latest message when the clock has not moved past it."""
    now = utcnow()
    if last_message_at is not None and now <= last_message_at:
        return last_message_at + timedelta(microseconds=1)
    return now

def message_query():
    return (
        select(Message)
        .options(
            selectinload(Message.attachments),
            selectinload(Message.sender_doctor),
            selectinload(Message.sender_clinic),
        )
        .execution_options(populate_existing=True)
    )

class MessageService:
    def __init__(
        self,
        session: AsyncSession,
        broadcaster: Broadcaster,
        publish_timeout: float = settings.BROADCAST_TIMEOUT_SECONDS,
    ):
        self.session = session
        self.broadcaster = broadcaster
        self.publish_timeout = publish_timeout

    async def send_message(
        self,
        chat_id: Optional[UUID],
        content: Optional[str],
        sender_id: Optional[UUID],
        sender_type: Optional[str],
        attachments: Optional[Iterable[AttachmentCreate]] = None,
    ) -> MessageResponse:
        if not chat_id or not content or not content.strip() or not sender_id or not sender_type:
            raise InvalidRequestError("Chat ID, content, sender ID, and sender type are required")

        sender = PartyRef(PartyRole.parse(sender_type), sender_id)
        attachments = list(attachments or [])

        async def persist() -> UUID:
            chat = await self._find_chat_for(chat_id, sender)
            if not chat:
                raise NotFoundError("Chat not found or sender is not a participant")

            message = Message(
                chat_id=chat.id,
                content=content,
                created_at=next_message_time(chat.last_message_at),
                **sender.as_columns("sender_"),
            )
            self.session.add(message)
            self.session.add_all([
                Attachment(
                    message_id=message.id,
                    filename=attachment.filename,
                    url=attachment.url,
                    type=attachment.type,
                )
                for attachment in attachments
            ])
            chat.last_message_at = message.created_at
            self.session.add(chat)
            await self.session.flush()
            return message.id

        message_id = await run_in_transaction(self.session, persist)
        message = await self.get_message(message_id)
        logger.info(f"Message {message.id} stored in chat {chat_id} from {sender.role.value} {sender.id}")

        await self._broadcast(chat_id, message)
        return message

    async def get_message(self, message_id: UUID) -> MessageResponse:
        result = await self.session.execute(message_query().where(Message.id == message_id))
        message = result.scalars().first()
        if not message:
            raise NotFoundError.resource("Message")
        return MessageResponse.from_message(message)

    async def get_messages(
        self,
        chat_id: UUID,
        page: int = 1,
        limit: Optional[int] = None,
        order: MessageOrder = MessageOrder.ASCENDING,
    ) -> MessagePage:
        if limit is None:
            limit = settings.DEFAULT_PAGE_SIZE
        if page < 1:
            raise InvalidRequestError("Page must be 1 or greater")
        if limit < 1 or limit > settings.MAX_PAGE_SIZE:
            raise InvalidRequestError(f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}")
        try:
            order = MessageOrder(order)
        except ValueError:
            raise InvalidRequestError("Order must be 'asc' or 'recent'")

        chat = await self.session.get(Chat, chat_id)
        if not chat:
            raise NotFoundError.resource("Chat")

        count_stmt = select(func.count(Message.id)).where(Message.chat_id == chat_id)
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = message_query().where(Message.chat_id == chat_id)
        if order is MessageOrder.ASCENDING:
            stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc())
        else:
            stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc())
        stmt = stmt.offset((page - 1) * limit).limit(limit)

        result = await self.session.execute(stmt)
        messages = list(result.scalars().all())
        if order is MessageOrder.RECENT:
            messages.reverse()

        return MessagePage(
            messages=[MessageResponse.from_message(m) for m in messages],
            pagination=PaginationMeta.build(page, limit, total),
        )

    async def mark_message_as_read(self, message_id: Optional[UUID], reader_id: Optional[UUID]) -> MessageReadResponse:
        if not message_id or not reader_id:
            raise InvalidRequestError("Message ID and reader ID are required")

        stmt = message_query().options(
            selectinload(Message.chat).selectinload(Chat.participants)
        ).where(Message.id == message_id)
        result = await self.session.execute(stmt)
        message = result.scalars().first()
        if not message:
            raise NotFoundError.resource("Message")

        if reader_id not in {participant.party.id for participant in message.chat.participants}:
            raise InvalidRequestError("Reader is not a participant in this chat")

        response = MessageResponse.from_message(message)
        if message.sender.id == reader_id:
            return MessageReadResponse(message=response, is_own_message=True, detail="Cannot mark own message as read")

        # TODO: persist a read receipt once its shape (per-reader row vs. read_at on the message) is settled
        logger.debug(f"Read of message {message_id} by {reader_id} acknowledged, not persisted")
        return MessageReadResponse(message=response, is_own_message=False, detail="Message read acknowledged")

    async def _find_chat_for(self, chat_id: UUID, sender: PartyRef) -> Optional[Chat]:
        stmt = select(Chat).join(ChatParticipant, ChatParticipant.chat_id == Chat.id).where(Chat.id == chat_id)
        if sender.role is PartyRole.DOCTOR:
            stmt = stmt.where(ChatParticipant.doctor_id == sender.id)
        else:
            stmt = stmt.where(ChatParticipant.clinic_id == sender.id)
        # Senders to one chat queue on its row, so message times follow commit order
        stmt = stmt.with_for_update(of=Chat)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalars().first()

    async def _broadcast(self, chat_id: UUID, message: MessageResponse):
        # The message is already committed; a slow or absent transport only costs the live push
        payload = message_event(message.model_dump(mode="json"))
        try:
            await asyncio.wait_for(
                self.broadcaster.publish(str(chat_id), payload),
                timeout=self.publish_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Broadcast of message {message.id} to chat {chat_id} timed out after {self.publish_timeout}s")
        except Exception as exc:
            logger.error(f"Broadcast of message {message.id} to chat {chat_id} failed: {exc}")
