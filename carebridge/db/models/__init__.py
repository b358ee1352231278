from sqlmodel import SQLModel
from .clinic import Clinic
from .doctor import Doctor
from .patient_doctor_link import PatientDoctorLink
from .patient import Patient, PatientStatus
from .change_status_request import ChangeStatusRequest
from .feedback import Feedback
from .chat import Chat, ChatParticipant
from .message import Message, Attachment

__all__ = [
    "SQLModel",
    "Clinic",
    "Doctor",
    "PatientDoctorLink",
    "Patient",
    "PatientStatus",
    "ChangeStatusRequest",
    "Feedback",
    "Chat",
    "ChatParticipant",
    "Message",
    "Attachment",
]
