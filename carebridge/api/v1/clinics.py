from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from carebridge.db.session import get_session
from carebridge.services.clinic_service import ClinicService
from carebridge.schemas.clinic import ClinicCreate, ClinicResponse

router = APIRouter()

@router.post("/", response_model=ClinicResponse, status_code=status.HTTP_201_CREATED)
async def create_clinic(
    clinic_data: ClinicCreate,
    session: AsyncSession = Depends(get_session)
):
    service = ClinicService(session)
    return await service.create_clinic(clinic_data)

@router.get("/{clinic_id}", response_model=ClinicResponse)
async def read_clinic(clinic_id: UUID, session: AsyncSession = Depends(get_session)):
    service = ClinicService(session)
    return await service.get_clinic(clinic_id)
