from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import func, select

from carebridge.core.errors import InternalError, InvalidRequestError, NotFoundError
from carebridge.db.models import (
    Attachment,
    Chat,
    ChatParticipant,
    Feedback,
    Message,
    Patient,
    PatientDoctorLink,
    PatientStatus,
)
from carebridge.db.session import run_in_transaction
from carebridge.schemas.chat import AttachmentCreate
from carebridge.schemas.patient import PatientCreate, PatientUpdate
from carebridge.services.chat_service import ChatService
from carebridge.services.message_service import MessageService
from carebridge.services.patient_service import PatientService


async def _count(session, column):
    return (await session.execute(select(func.count(column)))).scalar()


@pytest.mark.asyncio
async def test_create_patient(session, make_clinic):
    clinic = await make_clinic(session)
    payload = PatientCreate(
        clinic_id=clinic.id,
        name="Mara Quill",
        phone_number="0400000003",
        gender="female",
        date_of_birth=date(1984, 3, 14),
        address="7 Elm Road",
    )

    patient = await PatientService(session).create_patient(payload)

    assert patient.status == PatientStatus.ACTIVE
    assert patient.clinic_id == clinic.id
    assert patient.assigned_doctors == []


@pytest.mark.asyncio
async def test_create_patient_requires_fields_and_clinic(session, make_clinic):
    clinic = await make_clinic(session)
    service = PatientService(session)
    payload = dict(
        name="Mara Quill",
        phone_number="0400000003",
        gender="female",
        date_of_birth=date(1984, 3, 14),
        address="  ",
    )

    with pytest.raises(InvalidRequestError):
        await service.create_patient(PatientCreate(clinic_id=clinic.id, **payload))

    payload["address"] = "7 Elm Road"
    with pytest.raises(NotFoundError):
        await service.create_patient(PatientCreate(clinic_id=uuid4(), **payload))


@pytest.mark.asyncio
async def test_assign_and_deassign_doctor(session, make_clinic, make_doctor, make_patient):
    clinic = await make_clinic(session)
    doctor = await make_doctor(session)
    patient = await make_patient(session, clinic)
    # A rejected assignment rolls the session back and expires loaded rows
    patient_id, doctor_id = patient.id, doctor.id
    service = PatientService(session)

    assigned = await service.assign_doctor(patient_id, doctor_id)
    assert [d.id for d in assigned.assigned_doctors] == [doctor_id]

    with pytest.raises(InvalidRequestError) as exc_info:
        await service.assign_doctor(patient_id, doctor_id)
    assert exc_info.value.detail == "Doctor is already assigned to this patient"
    assert await _count(session, PatientDoctorLink.doctor_id) == 1

    released = await service.deassign_doctor(patient_id, doctor_id)
    assert released.assigned_doctors == []

    with pytest.raises(InvalidRequestError) as exc_info:
        await service.deassign_doctor(patient_id, doctor_id)
    assert exc_info.value.detail == "Doctor is not assigned to this patient"

    with pytest.raises(NotFoundError):
        await service.assign_doctor(patient_id, uuid4())


@pytest.mark.asyncio
async def test_list_and_search_patients(session, make_clinic, make_doctor, make_patient):
    clinic = await make_clinic(session)
    doctor = await make_doctor(session)
    mara = await make_patient(session, clinic, doctors=[doctor], name="Mara Quill")
    await make_patient(session, clinic, name="Otto Venn", status=PatientStatus.COMPLETED)
    service = PatientService(session)

    assert len(await service.list_clinic_patients(clinic.id)) == 2
    assert [p.id for p in await service.list_doctor_patients(doctor.id)] == [mara.id]

    found = await service.search_patients(clinic.id, search_term="QUILL")
    assert [p.name for p in found] == ["Mara Quill"]

    completed = await service.search_patients(clinic.id, status="completed")
    assert [p.name for p in completed] == ["Otto Venn"]

    with pytest.raises(InvalidRequestError):
        await service.search_patients(clinic.id, status="paused")


@pytest.mark.asyncio
async def test_update_patient_is_partial(session, make_clinic, make_patient):
    clinic = await make_clinic(session)
    patient = await make_patient(session, clinic)
    service = PatientService(session)

    updated = await service.update_patient(
        patient.id, PatientUpdate(address="9 Birch Lane", name=None, medical_procedure=None)
    )

    assert updated.address == "9 Birch Lane"
    assert updated.name == "Mara Quill"
    assert updated.medical_procedure is None

    with pytest.raises(NotFoundError):
        await service.update_patient(patient.id, PatientUpdate(clinic_id=uuid4()))


@pytest.mark.asyncio
async def test_feedback_only_after_active_care(session, make_clinic, make_patient):
    clinic = await make_clinic(session)
    active = await make_patient(session, clinic)
    done = await make_patient(session, clinic, status=PatientStatus.COMPLETED, name="Otto Venn")
    service = PatientService(session)

    with pytest.raises(InvalidRequestError):
        await service.add_feedback(active.id, "Great care")
    with pytest.raises(InvalidRequestError) as exc_info:
        await service.add_feedback(done.id, "")
    assert exc_info.value.detail == "Feedback content is required"

    entry = await service.add_feedback(done.id, "  Great care  ")
    assert entry.feedback == "Great care"
    assert [f.id for f in await service.list_feedbacks(done.id)] == [entry.id]


@pytest.mark.asyncio
async def test_delete_patient_removes_dependents(session, broadcaster, make_clinic, make_doctor, make_patient):
    clinic = await make_clinic(session)
    doctor = await make_doctor(session)
    patient = await make_patient(session, clinic, doctors=[doctor], status=PatientStatus.COMPLETED)
    chat = await ChatService(session).get_or_create_chat(doctor.id, clinic.id, patient.id)
    await MessageService(session, broadcaster).send_message(
        chat.id,
        "Discharge summary attached",
        clinic.id,
        "clinic",
        [AttachmentCreate(filename="summary.pdf", url="https://files.example/summary.pdf", type="application/pdf")],
    )
    service = PatientService(session)
    await service.add_feedback(patient.id, "Thank you")

    await service.delete_patient(patient.id)

    for column in (Patient.id, PatientDoctorLink.doctor_id, Chat.id, ChatParticipant.id, Message.id, Attachment.id, Feedback.id):
        assert await _count(session, column) == 0

    with pytest.raises(NotFoundError):
        await service.get_patient(patient.id)


@pytest.mark.asyncio
async def test_run_in_transaction_gives_up_after_retries(session):
    attempts = []

    async def always_conflicts():
        attempts.append(1)
        raise IntegrityError("INSERT ...", {}, Exception("unique constraint failed"))

    with pytest.raises(InternalError):
        await run_in_transaction(session, always_conflicts, retries=1)

    assert len(attempts) == 2
