from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import delete, func, or_, select

from carebridge.core.errors import InvalidRequestError, NotFoundError
from carebridge.core.logger import get_logger
from carebridge.db.models import (
    Attachment,
    ChangeStatusRequest,
    Chat,
    ChatParticipant,
    Clinic,
    Doctor,
    Feedback,
    Message,
    Patient,
    PatientDoctorLink,
    PatientStatus,
)
from carebridge.db.session import run_in_transaction
from carebridge.db.types import utcnow
from carebridge.schemas.patient import PatientCreate, PatientUpdate
from carebridge.services.assignment_service import AssignmentService

logger = get_logger("patients")

# Fields a partial update may clear by sending an explicit null
NULLABLE_FIELDS = {"latitude", "longitude", "medical_procedure"}

def patient_query():
    """Patient select with the relations responses need, refreshed from the store."""
    return (
        select(Patient)
        .options(
            selectinload(Patient.assigned_doctors),
            selectinload(Patient.change_status_requests),
        )
        .execution_options(populate_existing=True)
    )

def parse_status(value) -> PatientStatus:
    if isinstance(value, PatientStatus):
        return value
    try:
        return PatientStatus(str(value).strip().upper())
    except ValueError:
        raise InvalidRequestError("Invalid patient status")

class PatientService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.assignments = AssignmentService(session)

    async def get_patient(self, patient_id: UUID) -> Patient:
        result = await self.session.execute(patient_query().where(Patient.id == patient_id))
        patient = result.scalars().first()
        if not patient:
            raise NotFoundError.resource("Patient")
        return patient

    async def create_patient(self, patient_data: PatientCreate) -> Patient:
        required = (patient_data.name, patient_data.phone_number, patient_data.gender, patient_data.address)
        if not all(value and value.strip() for value in required):
            raise InvalidRequestError("Please provide all required patient information")

        clinic = await self.session.get(Clinic, patient_data.clinic_id)
        if not clinic:
            raise NotFoundError.resource("Clinic")

        patient = Patient(**patient_data.model_dump())
        self.session.add(patient)
        await self.session.commit()
        logger.info(f"Patient {patient.id} created for clinic {clinic.id}")
        return await self.get_patient(patient.id)

    async def list_clinic_patients(self, clinic_id: UUID) -> List[Patient]:
        stmt = patient_query().where(Patient.clinic_id == clinic_id).order_by(Patient.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_doctor_patients(self, doctor_id: UUID) -> List[Patient]:
        stmt = (
            patient_query()
            .join(PatientDoctorLink, PatientDoctorLink.patient_id == Patient.id)
            .where(PatientDoctorLink.doctor_id == doctor_id)
            .order_by(Patient.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def search_patients(
        self,
        clinic_id: UUID,
        search_term: Optional[str] = None,
        status: Optional[str] = None,
        gender: Optional[str] = None,
    ) -> List[Patient]:
        stmt = patient_query().where(Patient.clinic_id == clinic_id)
        if search_term:
            pattern = f"%{search_term.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Patient.name).like(pattern),
                    func.lower(Patient.phone_number).like(pattern),
                    func.lower(Patient.address).like(pattern),
                )
            )
        if status:
            stmt = stmt.where(Patient.status == parse_status(status))
        if gender:
            stmt = stmt.where(Patient.gender == gender)

        result = await self.session.execute(stmt.order_by(Patient.created_at.desc()))
        return result.scalars().all()

    async def update_patient(self, patient_id: UUID, patient_update: PatientUpdate) -> Patient:
        patient = await self.get_patient(patient_id)

        update_data = patient_update.model_dump(exclude_unset=True)
        if update_data.get("clinic_id") is not None:
            clinic = await self.session.get(Clinic, update_data["clinic_id"])
            if not clinic:
                raise NotFoundError.resource("Clinic")

        for key, value in update_data.items():
            if value is None and key not in NULLABLE_FIELDS:
                continue
            setattr(patient, key, value)

        patient.updated_at = utcnow()
        self.session.add(patient)
        await self.session.commit()
        return await self.get_patient(patient_id)

    async def assign_doctor(self, patient_id: UUID, doctor_id: UUID) -> Patient:
        await self.get_patient(patient_id)
        doctor = await self.session.get(Doctor, doctor_id)
        if not doctor:
            raise NotFoundError.resource("Doctor")

        async def assign():
            if await self.assignments.is_assigned(doctor_id, patient_id):
                raise InvalidRequestError("Doctor is already assigned to this patient")
            self.session.add(PatientDoctorLink(patient_id=patient_id, doctor_id=doctor_id))
            await self.session.flush()

        await run_in_transaction(self.session, assign)
        logger.info(f"Doctor {doctor_id} assigned to patient {patient_id}")
        return await self.get_patient(patient_id)

    async def deassign_doctor(self, patient_id: UUID, doctor_id: UUID) -> Patient:
        await self.get_patient(patient_id)
        doctor = await self.session.get(Doctor, doctor_id)
        if not doctor:
            raise NotFoundError.resource("Doctor")

        link = await self.session.get(PatientDoctorLink, (patient_id, doctor_id))
        if not link:
            raise InvalidRequestError("Doctor is not assigned to this patient")

        await self.session.delete(link)
        await self.session.commit()
        logger.info(f"Doctor {doctor_id} de-assigned from patient {patient_id}")
        return await self.get_patient(patient_id)

    async def add_feedback(self, patient_id: UUID, feedback: Optional[str]) -> Feedback:
        patient = await self.get_patient(patient_id)

        if not feedback or not feedback.strip():
            raise InvalidRequestError("Feedback content is required")
        # Feedback closes out an episode; it is not taken while care is ongoing
        if patient.status == PatientStatus.ACTIVE:
            raise InvalidRequestError("Feedback can only be added once the patient's care episode is no longer active")

        entry = Feedback(patient_id=patient_id, feedback=feedback.strip())
        self.session.add(entry)
        await self.session.commit()
        await self.session.refresh(entry)
        return entry

    async def list_feedbacks(self, patient_id: UUID) -> List[Feedback]:
        await self.get_patient(patient_id)
        stmt = select(Feedback).where(Feedback.patient_id == patient_id).order_by(Feedback.created_at.desc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def delete_patient(self, patient_id: UUID) -> None:
        await self.get_patient(patient_id)

        chat_ids = select(Chat.id).where(Chat.patient_id == patient_id)
        message_ids = select(Message.id).where(Message.chat_id.in_(chat_ids))
        statements = [
            delete(Attachment).where(Attachment.message_id.in_(message_ids)),
            delete(Message).where(Message.chat_id.in_(chat_ids)),
            delete(ChatParticipant).where(ChatParticipant.chat_id.in_(chat_ids)),
            delete(Chat).where(Chat.patient_id == patient_id),
            delete(Feedback).where(Feedback.patient_id == patient_id),
            delete(ChangeStatusRequest).where(ChangeStatusRequest.patient_id == patient_id),
            delete(PatientDoctorLink).where(PatientDoctorLink.patient_id == patient_id),
            delete(Patient).where(Patient.id == patient_id),
        ]

        async def purge():
            for stmt in statements:
                await self.session.execute(stmt.execution_options(synchronize_session=False))

        await run_in_transaction(self.session, purge)
        # Bulk deletes bypass the identity map
        self.session.expunge_all()
        logger.info(f"Patient {patient_id} deleted")
