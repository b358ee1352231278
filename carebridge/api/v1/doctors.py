from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from carebridge.db.session import get_session
from carebridge.services.doctor_service import DoctorService
from carebridge.schemas.doctor import DoctorCreate, DoctorResponse

router = APIRouter()

@router.post("/", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    doctor_data: DoctorCreate,
    session: AsyncSession = Depends(get_session)
):
    service = DoctorService(session)
    return await service.create_doctor(doctor_data)

@router.get("/{doctor_id}", response_model=DoctorResponse)
async def read_doctor(doctor_id: UUID, session: AsyncSession = Depends(get_session)):
    service = DoctorService(session)
    return await service.get_doctor(doctor_id)
