"""
Dual-consent status transitions.

Closing a care episode (``COMPLETED``) needs the owning clinic and an
assigned doctor to agree. The first acceptance is recorded as a
``ChangeStatusRequest`` with one flag set; the counterpart's acceptance sets
the second flag, applies the status and deletes the request, all in the
transaction of that second call. Every other transition, and ``COMPLETED``
for a patient nobody is assigned to, applies unilaterally.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import delete, select

from carebridge.core.errors import ConflictError, InvalidRequestError, NotFoundError
from carebridge.core.logger import get_logger
from carebridge.core.parties import PartyRole
from carebridge.db.models import ChangeStatusRequest, Patient, PatientStatus
from carebridge.db.session import run_in_transaction
from carebridge.db.types import utcnow
from carebridge.services.patient_service import PatientService, parse_status

logger = get_logger("status")

# Targets that need both parties to accept
CONSENT_GATED_STATUSES = frozenset({PatientStatus.COMPLETED})

@dataclass
class StatusChangeResult:
    applied: bool
    message: str
    patient: Optional[Patient] = None
    request: Optional[ChangeStatusRequest] = None

class StatusService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.patients = PatientService(session)

    async def request_status_change(
        self,
        patient_id: UUID,
        target_status,
        role,
        requester_id: Optional[UUID] = None,
    ) -> StatusChangeResult:
        async def resolve():
            return await self._resolve(patient_id, target_status, role, requester_id)

        result = await run_in_transaction(self.session, resolve)

        if result.applied:
            result.patient = await self.patients.get_patient(patient_id)
            logger.info(f"Patient {patient_id} status is now {result.patient.status.value}")
        else:
            logger.info(
                f"Status change to {result.request.status.value} for patient {patient_id} "
                f"recorded for {PartyRole.parse(role).value}, awaiting counterpart"
            )
        return result

    async def get_pending_request(self, patient_id: UUID, status: PatientStatus) -> Optional[ChangeStatusRequest]:
        stmt = select(ChangeStatusRequest).where(
            ChangeStatusRequest.patient_id == patient_id,
            ChangeStatusRequest.status == status,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _resolve(self, patient_id, target_status, role, requester_id) -> StatusChangeResult:
        # The patient row lock serializes concurrent acceptances for one patient
        stmt = (
            select(Patient)
            .options(selectinload(Patient.assigned_doctors))
            .where(Patient.id == patient_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        patient = result.scalars().first()
        if not patient:
            raise NotFoundError.resource("Patient")

        status = parse_status(target_status)
        party = PartyRole.parse(role, "Role must be 'doctor' or 'clinic'")
        if requester_id is not None:
            self._ensure_party_of(patient, party, requester_id)

        if patient.status == status:
            return StatusChangeResult(applied=True, message="Patient already has this status")

        if status not in CONSENT_GATED_STATUSES or not patient.assigned_doctors:
            await self._apply(patient, status)
            return StatusChangeResult(applied=True, message="Patient status updated successfully")

        stmt = (
            select(ChangeStatusRequest)
            .where(
                ChangeStatusRequest.patient_id == patient_id,
                ChangeStatusRequest.status == status,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        pending = result.scalars().first()

        if pending is None:
            # A racing first acceptance trips the unique (patient, status)
            # constraint here and the transaction is re-run against its row
            pending = ChangeStatusRequest(
                patient_id=patient_id,
                status=status,
                has_doctor_accepted=party is PartyRole.DOCTOR,
                has_clinic_accepted=party is PartyRole.CLINIC,
            )
            self.session.add(pending)
            await self.session.flush()
            return StatusChangeResult(
                applied=False,
                message="Status change requested, awaiting the other party",
                request=pending,
            )

        if self._has_accepted(pending, party):
            raise ConflictError(f"Status change already requested by this {party.value}")

        if party is PartyRole.DOCTOR:
            pending.has_doctor_accepted = True
        else:
            pending.has_clinic_accepted = True

        if pending.has_doctor_accepted and pending.has_clinic_accepted:
            await self.session.delete(pending)
            await self._apply(patient, status)
            return StatusChangeResult(applied=True, message="Both parties accepted, patient status updated")

        self.session.add(pending)
        await self.session.flush()
        return StatusChangeResult(
            applied=False,
            message="Status change requested, awaiting the other party",
            request=pending,
        )

    async def _apply(self, patient: Patient, status: PatientStatus):
        patient.status = status
        patient.updated_at = utcnow()
        self.session.add(patient)
        await self.session.flush()
        # A request for this target is consumed by the transition it authorizes;
        # this also clears one left behind when the last doctor was de-assigned
        await self.session.execute(
            delete(ChangeStatusRequest)
            .where(
                ChangeStatusRequest.patient_id == patient.id,
                ChangeStatusRequest.status == status,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()

    @staticmethod
    def _has_accepted(request: ChangeStatusRequest, party: PartyRole) -> bool:
        if party is PartyRole.DOCTOR:
            return request.has_doctor_accepted
        return request.has_clinic_accepted

    @staticmethod
    def _ensure_party_of(patient: Patient, party: PartyRole, requester_id: UUID):
        if party is PartyRole.CLINIC and patient.clinic_id != requester_id:
            raise InvalidRequestError("Clinic does not own this patient")
        if party is PartyRole.DOCTOR and requester_id not in {d.id for d in patient.assigned_doctors}:
            raise InvalidRequestError("Doctor is not assigned to this patient")
