from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from carebridge.core.errors import InvalidRequestError, NotFoundError
from carebridge.db.models import Patient, PatientDoctorLink

class AssignmentService:
    """
    Read-only answers about who may act on a patient: the clinic that owns
    it and the doctors assigned to it. Never writes.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_assigned(self, doctor_id: UUID, patient_id: UUID) -> bool:
        stmt = select(PatientDoctorLink.doctor_id).where(
            PatientDoctorLink.patient_id == patient_id,
            PatientDoctorLink.doctor_id == doctor_id,
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def ensure_assigned(self, doctor_id: UUID, patient_id: UUID) -> None:
        if not await self.is_assigned(doctor_id, patient_id):
            raise InvalidRequestError("Doctor is not assigned to this patient")

    async def get_owned_patient(self, patient_id: UUID, clinic_id: UUID) -> Patient:
        stmt = select(Patient).where(Patient.id == patient_id, Patient.clinic_id == clinic_id)
        result = await self.session.execute(stmt)
        patient = result.scalars().first()
        if not patient:
            raise NotFoundError("Patient not found or doesn't belong to this clinic")
        return patient
