import asyncio
from datetime import date

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from carebridge.api.deps import get_broadcaster
from carebridge.core.security import create_access_token
from carebridge.db.models import Clinic, Doctor, Patient, PatientDoctorLink, PatientStatus
from carebridge.db.session import get_session
from carebridge.main import app


class FakeBroadcaster:
    """Records published events; can be told to fail or stall."""

    def __init__(self):
        self.published = []
        self.fail = False
        self.delay = 0.0

    async def publish(self, channel, payload):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("broadcast transport unavailable")
        self.published.append((channel, payload))


async def _create_engine(url, **kwargs):
    engine = create_async_engine(url, **kwargs)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def engine():
    # One shared in-memory connection for the whole test
    engine = await _create_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    # Separate connections per session, for tests that race two transactions
    engine = await _create_engine(f"sqlite+aiosqlite:///{tmp_path / 'carebridge.db'}")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def file_session_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def broadcaster():
    return FakeBroadcaster()


@pytest.fixture
def make_clinic():
    async def factory(session, name="Harbor Clinic"):
        clinic = Clinic(clinic_name=name, clinic_address="12 Quay Street", clinic_phone_number="0400000001")
        session.add(clinic)
        await session.commit()
        return clinic
    return factory


@pytest.fixture
def make_doctor():
    async def factory(session, name="Dr. Ada Lind"):
        doctor = Doctor(full_name=name, specialization="Physiotherapy", phone_number="0400000002")
        session.add(doctor)
        await session.commit()
        return doctor
    return factory


@pytest.fixture
def make_patient():
    async def factory(session, clinic, doctors=(), status=PatientStatus.ACTIVE, name="Mara Quill"):
        patient = Patient(
            clinic_id=clinic.id,
            name=name,
            phone_number="0400000003",
            gender="female",
            date_of_birth=date(1984, 3, 14),
            address="7 Elm Road",
            status=status,
            medical_procedure="Knee rehabilitation",
        )
        session.add(patient)
        await session.flush()
        for doctor in doctors:
            session.add(PatientDoctorLink(patient_id=patient.id, doctor_id=doctor.id))
        await session.commit()
        return patient
    return factory


@pytest_asyncio.fixture
async def care_team(session, make_clinic, make_doctor, make_patient):
    """A clinic, one assigned doctor and their active patient."""
    clinic = await make_clinic(session)
    doctor = await make_doctor(session)
    patient = await make_patient(session, clinic, doctors=[doctor])
    return clinic, doctor, patient


@pytest.fixture
def auth_headers():
    def build(role, party_id):
        token = create_access_token({"sub": str(party_id), "role": role})
        return {"Authorization": f"Bearer {token}"}
    return build


@pytest_asyncio.fixture
async def client(session_factory, broadcaster):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
