from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from carebridge.core.errors import NotFoundError
from carebridge.core.logger import get_logger
from carebridge.db.models import Clinic
from carebridge.schemas.clinic import ClinicCreate

logger = get_logger("clinics")

class ClinicService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_clinic(self, clinic_data: ClinicCreate) -> Clinic:
        clinic = Clinic(**clinic_data.model_dump())
        self.session.add(clinic)
        await self.session.commit()
        await self.session.refresh(clinic)
        logger.info(f"Clinic {clinic.id} registered")
        return clinic

    async def get_clinic(self, clinic_id: UUID) -> Clinic:
        clinic = await self.session.get(Clinic, clinic_id)
        if not clinic:
            raise NotFoundError.resource("Clinic")
        return clinic
