from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from carebridge.api.deps import Caller, get_current_caller
from carebridge.db.session import get_session
from carebridge.schemas.patient import (
    AssignDoctorRequest,
    ChangeStatusRequestResponse,
    FeedbackCreate,
    FeedbackResponse,
    PatientCreate,
    PatientResponse,
    PatientUpdate,
    StatusChangeResponse,
    StatusUpdate,
)
from carebridge.services.patient_service import PatientService
from carebridge.services.status_service import StatusService

router = APIRouter()

async def get_patient_service(session: AsyncSession = Depends(get_session)) -> PatientService:
    return PatientService(session)

async def get_status_service(session: AsyncSession = Depends(get_session)) -> StatusService:
    return StatusService(session)

@router.post("/", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    payload: PatientCreate,
    service: PatientService = Depends(get_patient_service)
):
    return await service.create_patient(payload)

@router.get("/clinic/{clinic_id}", response_model=List[PatientResponse])
async def read_clinic_patients(
    clinic_id: UUID,
    service: PatientService = Depends(get_patient_service)
):
    return await service.list_clinic_patients(clinic_id)

@router.get("/clinic/{clinic_id}/search", response_model=List[PatientResponse])
async def search_patients(
    clinic_id: UUID,
    search_term: Optional[str] = None,
    status: Optional[str] = None,
    gender: Optional[str] = None,
    service: PatientService = Depends(get_patient_service)
):
    return await service.search_patients(clinic_id, search_term, status, gender)

@router.get("/doctor/{doctor_id}", response_model=List[PatientResponse])
async def read_doctor_patients(
    doctor_id: UUID,
    service: PatientService = Depends(get_patient_service)
):
    return await service.list_doctor_patients(doctor_id)

@router.get("/{patient_id}", response_model=PatientResponse)
async def read_patient(
    patient_id: UUID,
    service: PatientService = Depends(get_patient_service)
):
    return await service.get_patient(patient_id)

@router.put("/{patient_id}", response_model=PatientResponse)
async def update_patient(
    patient_id: UUID,
    payload: PatientUpdate,
    service: PatientService = Depends(get_patient_service)
):
    return await service.update_patient(patient_id, payload)

@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_patient(
    patient_id: UUID,
    service: PatientService = Depends(get_patient_service)
):
    await service.delete_patient(patient_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.patch("/{patient_id}/assign-doctor", response_model=PatientResponse)
async def assign_doctor(
    patient_id: UUID,
    payload: AssignDoctorRequest,
    service: PatientService = Depends(get_patient_service)
):
    return await service.assign_doctor(patient_id, payload.doctor_id)

@router.patch("/{patient_id}/de-assign-doctor", response_model=PatientResponse)
async def deassign_doctor(
    patient_id: UUID,
    payload: AssignDoctorRequest,
    service: PatientService = Depends(get_patient_service)
):
    return await service.deassign_doctor(patient_id, payload.doctor_id)

@router.patch("/{patient_id}/status", response_model=StatusChangeResponse)
async def request_status_change(
    patient_id: UUID,
    payload: StatusUpdate,
    caller: Caller = Depends(get_current_caller),
    service: StatusService = Depends(get_status_service)
):
    result = await service.request_status_change(patient_id, payload.status, caller.role, requester_id=caller.id)
    return StatusChangeResponse(
        applied=result.applied,
        message=result.message,
        patient=PatientResponse.model_validate(result.patient) if result.patient else None,
        request=ChangeStatusRequestResponse.model_validate(result.request) if result.request else None,
    )

@router.post("/{patient_id}/feedbacks", response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
async def add_feedback(
    patient_id: UUID,
    payload: FeedbackCreate,
    service: PatientService = Depends(get_patient_service)
):
    return await service.add_feedback(patient_id, payload.feedback)

@router.get("/{patient_id}/feedbacks", response_model=List[FeedbackResponse])
async def read_feedbacks(
    patient_id: UUID,
    service: PatientService = Depends(get_patient_service)
):
    return await service.list_feedbacks(patient_id)
