from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlmodel import func, select

from carebridge.core.errors import InternalError, InvalidRequestError, NotFoundError
from carebridge.core.parties import PartyRole
from carebridge.db.models import Attachment, Chat, Message
from carebridge.schemas.chat import AttachmentCreate, MessageOrder
from carebridge.services.chat_service import ChatService
from carebridge.services.message_service import MessageService


async def _last_message_at(session, chat_id):
    result = await session.execute(select(Chat.last_message_at).where(Chat.id == chat_id))
    return result.scalar_one()


async def _count(session, column):
    return (await session.execute(select(func.count(column)))).scalar()


@pytest_asyncio.fixture
async def chat(session, care_team):
    clinic, doctor, patient = care_team
    return await ChatService(session).get_or_create_chat(doctor.id, clinic.id, patient.id)


@pytest_asyncio.fixture
async def seeded_chat(session, care_team, chat):
    """Chat with 25 clinic messages, one second apart, numbered from 1."""
    clinic, doctor, patient = care_team
    start = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)
    session.add_all([
        Message(
            chat_id=chat.id,
            content=f"message {i}",
            sender_clinic_id=clinic.id,
            created_at=start + timedelta(seconds=i),
        )
        for i in range(1, 26)
    ])
    await session.commit()
    return chat


@pytest.mark.asyncio
async def test_send_message_persists_and_broadcasts(session, broadcaster, care_team, chat):
    clinic, doctor, patient = care_team
    service = MessageService(session, broadcaster)

    message = await service.send_message(
        chat.id,
        "Range of motion is improving",
        doctor.id,
        "Doctor",
        [AttachmentCreate(filename="knee.png", url="https://files.example/knee.png", type="image/png")],
    )

    assert message.sender_type is PartyRole.DOCTOR
    assert message.sender_id == doctor.id
    assert message.sender_clinic_id is None
    assert message.sender_name == doctor.full_name
    assert [a.filename for a in message.attachments] == ["knee.png"]

    assert await _last_message_at(session, chat.id) == message.created_at

    assert len(broadcaster.published) == 1
    channel, payload = broadcaster.published[0]
    assert channel == str(chat.id)
    assert payload["event"] == "receive_message"
    assert payload["data"]["id"] == str(message.id)


@pytest.mark.asyncio
async def test_send_message_validation(session, broadcaster, care_team, chat):
    clinic, doctor, patient = care_team
    service = MessageService(session, broadcaster)

    with pytest.raises(InvalidRequestError) as exc_info:
        await service.send_message(chat.id, "   ", clinic.id, "clinic")
    assert exc_info.value.detail == "Chat ID, content, sender ID, and sender type are required"

    with pytest.raises(InvalidRequestError) as exc_info:
        await service.send_message(chat.id, "hello", clinic.id, "patient")
    assert exc_info.value.detail == "Sender type must be 'doctor' or 'clinic'"

    assert broadcaster.published == []


@pytest.mark.asyncio
async def test_non_participant_cannot_send(session, broadcaster, care_team, chat, make_doctor):
    clinic, doctor, patient = care_team
    outsider = await make_doctor(session, name="Dr. Ivo Brandt")
    clinic_id, outsider_id = clinic.id, outsider.id
    service = MessageService(session, broadcaster)

    with pytest.raises(NotFoundError) as exc_info:
        await service.send_message(chat.id, "hello", outsider_id, "doctor")
    assert exc_info.value.detail == "Chat not found or sender is not a participant"

    # Right id, wrong role: the clinic id is not a doctor participant
    with pytest.raises(NotFoundError) as exc_info:
        await service.send_message(chat.id, "hello", clinic_id, "doctor")
    assert exc_info.value.detail == "Chat not found or sender is not a participant"

    page = await service.get_messages(chat.id)
    assert page.pagination.total == 0
    assert broadcaster.published == []


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_fail_send(session, broadcaster, care_team, chat):
    clinic, doctor, patient = care_team
    broadcaster.fail = True

    message = await MessageService(session, broadcaster).send_message(chat.id, "hello", clinic.id, "clinic")

    assert message.content == "hello"
    page = await MessageService(session, broadcaster).get_messages(chat.id)
    assert [m.id for m in page.messages] == [message.id]


@pytest.mark.asyncio
async def test_slow_broadcast_is_bounded(session, broadcaster, care_team, chat):
    clinic, doctor, patient = care_team
    broadcaster.delay = 1.0

    message = await MessageService(session, broadcaster, publish_timeout=0.05).send_message(
        chat.id, "hello", clinic.id, "clinic"
    )

    assert message.sender_type is PartyRole.CLINIC
    assert broadcaster.published == []


@pytest.mark.asyncio
async def test_failed_attachment_write_discards_the_message(session, broadcaster, care_team, chat):
    clinic, doctor, patient = care_team
    clinic_id = clinic.id
    # url is NOT NULL in the store; skipping validation makes the insert itself fail
    broken = AttachmentCreate.model_construct(filename="scan.pdf", url=None, type="application/pdf")

    with pytest.raises(InternalError):
        await MessageService(session, broadcaster).send_message(
            chat.id, "Scan attached", clinic_id, "clinic", [broken]
        )

    assert await _count(session, Message.id) == 0
    assert await _count(session, Attachment.id) == 0
    assert await _last_message_at(session, chat.id) is None
    assert broadcaster.published == []


@pytest.mark.asyncio
async def test_messages_in_one_clock_tick_keep_send_order(session, broadcaster, care_team, chat, monkeypatch):
    clinic, doctor, patient = care_team
    frozen = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)
    monkeypatch.setattr("carebridge.services.message_service.utcnow", lambda: frozen)
    service = MessageService(session, broadcaster)

    sent = [
        await service.send_message(chat.id, f"note {i}", sender_id, sender_type)
        for i, (sender_id, sender_type) in enumerate(
            [(clinic.id, "clinic"), (doctor.id, "doctor"), (clinic.id, "clinic")]
        )
    ]

    assert sent[0].created_at == frozen
    assert sent[0].created_at < sent[1].created_at < sent[2].created_at
    page = await service.get_messages(chat.id)
    assert [m.content for m in page.messages] == ["note 0", "note 1", "note 2"]
    recent = await service.get_messages(chat.id, order=MessageOrder.RECENT)
    assert [m.id for m in recent.messages] == [m.id for m in sent]


@pytest.mark.asyncio
async def test_get_messages_ascending_pages(session, broadcaster, seeded_chat):
    page = await MessageService(session, broadcaster).get_messages(seeded_chat.id, page=2, limit=10)

    assert [m.content for m in page.messages] == [f"message {i}" for i in range(11, 21)]
    meta = page.pagination
    assert (meta.page, meta.limit, meta.total, meta.total_pages) == (2, 10, 25, 3)
    assert meta.has_next is True
    assert meta.has_prev is True


@pytest.mark.asyncio
async def test_get_messages_recent_window(session, broadcaster, seeded_chat):
    service = MessageService(session, broadcaster)

    first = await service.get_messages(seeded_chat.id, page=1, limit=10, order=MessageOrder.RECENT)
    last = await service.get_messages(seeded_chat.id, page=3, limit=10, order="recent")

    assert [m.content for m in first.messages] == [f"message {i}" for i in range(16, 26)]
    assert [m.content for m in last.messages] == [f"message {i}" for i in range(1, 6)]
    assert last.pagination.has_next is False


@pytest.mark.asyncio
async def test_get_messages_empty_chat_and_bad_arguments(session, broadcaster, chat):
    service = MessageService(session, broadcaster)

    page = await service.get_messages(chat.id)
    assert page.messages == []
    assert page.pagination.total_pages == 0
    assert page.pagination.has_next is False

    with pytest.raises(InvalidRequestError):
        await service.get_messages(chat.id, page=0)
    with pytest.raises(InvalidRequestError):
        await service.get_messages(chat.id, limit=1000)
    with pytest.raises(InvalidRequestError):
        await service.get_messages(chat.id, order="sideways")
    with pytest.raises(NotFoundError):
        await service.get_messages(uuid4())


@pytest.mark.asyncio
async def test_mark_message_as_read(session, broadcaster, care_team, chat, make_clinic):
    clinic, doctor, patient = care_team
    service = MessageService(session, broadcaster)
    message = await service.send_message(chat.id, "Please confirm the next session", clinic.id, "clinic")

    own = await service.mark_message_as_read(message.id, clinic.id)
    assert own.is_own_message is True
    assert own.detail == "Cannot mark own message as read"

    read = await service.mark_message_as_read(message.id, doctor.id)
    assert read.is_own_message is False
    assert read.message.id == message.id

    outsider = await make_clinic(session, name="Northside Clinic")
    with pytest.raises(InvalidRequestError) as exc_info:
        await service.mark_message_as_read(message.id, outsider.id)
    assert exc_info.value.detail == "Reader is not a participant in this chat"

    with pytest.raises(NotFoundError):
        await service.mark_message_as_read(uuid4(), doctor.id)
    with pytest.raises(InvalidRequestError):
        await service.mark_message_as_read(message.id, None)
