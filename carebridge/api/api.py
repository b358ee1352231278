from fastapi import APIRouter, Depends
from carebridge.api.deps import get_current_caller
from carebridge.api.v1 import clinics, doctors, patients, chats

api_router = APIRouter(dependencies=[Depends(get_current_caller)])

api_router.include_router(clinics.router, prefix="/clinics", tags=["clinics"])
api_router.include_router(doctors.router, prefix="/doctors", tags=["doctors"])
api_router.include_router(patients.router, prefix="/patients", tags=["patients"])
api_router.include_router(chats.router, prefix="/chats", tags=["chats"])
