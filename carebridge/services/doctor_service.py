from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from carebridge.core.errors import NotFoundError
from carebridge.core.logger import get_logger
from carebridge.db.models import Doctor
from carebridge.schemas.doctor import DoctorCreate

logger = get_logger("doctors")

class DoctorService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_doctor(self, doctor_data: DoctorCreate) -> Doctor:
        doctor = Doctor(**doctor_data.model_dump())
        self.session.add(doctor)
        await self.session.commit()
        await self.session.refresh(doctor)
        logger.info(f"Doctor {doctor.id} registered")
        return doctor

    async def get_doctor(self, doctor_id: UUID) -> Doctor:
        doctor = await self.session.get(Doctor, doctor_id)
        if not doctor:
            raise NotFoundError.resource("Doctor")
        return doctor
