"""
Test configuration and fixtures.

Provides:
- A fresh SQLite database file per test (app code commits freely)
- A paused ReminderScheduler installed on the app
- JWT token minting for client, provider, and admin users
- HTTPX AsyncClients with session cookie and CSRF header
"""
import os
import uuid
from datetime import date, timedelta
from typing import AsyncGenerator, Callable, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_BOOKING"] = "1000"

from clinic_api.main import app
from clinic_api.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from clinic_api.core.security import create_session_token
from clinic_api.db.base import Base
from clinic_api.db.enums import AppointmentStatus, Role
from clinic_api.db.models import Appointment, User
from clinic_api.services import slot_service
from clinic_api.services.reminder_scheduler import ReminderScheduler


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite so the scheduler's sessions see committed rows."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'clinic.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(scope="function")
def reminders(session_factory) -> Generator[ReminderScheduler, None, None]:
    """Running but paused scheduler: timers are armed, nothing fires on its own."""
    scheduler = ReminderScheduler(session_factory)
    scheduler.start(paused=True)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def tomorrow() -> date:
    return slot_service.clinic_today() + timedelta(days=1)


# =============================================================================
# Users
# =============================================================================

def _create_user(db: Session, role: Role, name: str, **kwargs) -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name,
        role=role.value,
        **kwargs,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def client_user(db: Session) -> User:
    return _create_user(db, Role.CLIENT, "Jamie Owner")


@pytest.fixture(scope="function")
def other_client_user(db: Session) -> User:
    return _create_user(db, Role.CLIENT, "Sam Other")


@pytest.fixture(scope="function")
def provider_user(db: Session) -> User:
    return _create_user(
        db,
        Role.PROVIDER,
        "Dr. Rivera",
        specialization="General Practice",
        bio="Twenty years of small-animal practice.",
    )


@pytest.fixture(scope="function")
def other_provider_user(db: Session) -> User:
    return _create_user(db, Role.PROVIDER, "Dr. Chen", specialization="Dentistry")


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    return _create_user(db, Role.ADMIN, "Clinic Admin")


@pytest.fixture
def make_appointment(db: Session) -> Callable[..., Appointment]:
    """Insert an appointment row directly, bypassing the booking ledger."""
    def _make(
        client: User,
        provider_id: uuid.UUID,
        appointment_date: date,
        slot_time: str = "10:00 AM",
        status: AppointmentStatus = AppointmentStatus.PENDING,
    ) -> Appointment:
        appointment = Appointment(
            id=uuid.uuid4(),
            client_id=client.id,
            provider_id=provider_id,
            appointment_date=appointment_date,
            slot_time=slot_time,
            status=status.value,
            contact_name=client.display_name,
            contact_phone="555-0100",
            patient_name="Biscuit",
            patient_type="Dog",
            patient_age="3",
            service="Checkup",
        )
        db.add(appointment)
        db.commit()
        return appointment
    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

def _token_for(user: User) -> str:
    return create_session_token(
        user_id=user.id,
        role=user.role,
        token_version=user.token_version,
    )


@pytest.fixture(scope="function")
def app_state(db: Session, reminders: ReminderScheduler):
    """Point the app at the test database and scheduler."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.reminder_scheduler = reminders
    yield app
    app.dependency_overrides.clear()
    del app.state.reminder_scheduler


def _async_client(user: User | None = None) -> AsyncClient:
    kwargs = {}
    if user is not None:
        kwargs["cookies"] = {COOKIE_NAME: _token_for(user)}
        kwargs["headers"] = {CSRF_HEADER: CSRF_HEADER_VALUE}
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", **kwargs)


@pytest.fixture(scope="function")
async def client(app_state) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client for public endpoints."""
    async with _async_client() as c:
        yield c


@pytest.fixture(scope="function")
async def client_api(app_state, client_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _async_client(client_user) as c:
        yield c


@pytest.fixture(scope="function")
async def other_client_api(app_state, other_client_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _async_client(other_client_user) as c:
        yield c


@pytest.fixture(scope="function")
async def provider_api(app_state, provider_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _async_client(provider_user) as c:
        yield c


@pytest.fixture(scope="function")
async def admin_api(app_state, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with _async_client(admin_user) as c:
        yield c
