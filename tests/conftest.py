"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseRight tests.
Fixtures include database sessions, a frozen clock, test clients and
sample users, patients, devices and medication plans.
"""

import os
import sys
from datetime import datetime
from typing import Callable, Dict, Generator

# Keep the application engine off the filesystem during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import Base
from models import (
    User, Patient, Device, MedicationPlan, DoseLog, CaretakerLink,
    UserRole, DoseStatus
)
from api.deps import get_db, get_clock
from services.auth_service import create_access_token, hash_password
from tools.clock import FixedClock
from app import app


# Wednesday; adjusted weekday 3
NOW = datetime(2026, 10, 21, 9, 0)
TEST_PASSWORD = "secret123"


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at Wednesday 2026-10-21 09:00"""
    return FixedClock(NOW)


@pytest.fixture(scope="function")
def client(db_session: Session, clock: FixedClock) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database and clock overrides"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory creating users with a known password"""
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.PATIENT, name: str = None, email: str = None) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.value.title()} {counter['n']}",
            email=email or f"{role.value}{counter['n']}@example.com",
            role=role,
            password_hash=hash_password(TEST_PASSWORD),
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def patient_user(make_user) -> User:
    return make_user(UserRole.PATIENT, name="Asha Rao", email="asha@example.com")


@pytest.fixture
def test_device(db_session: Session) -> Device:
    """Create and return a 4-slot dispenser"""
    device = Device(
        device_id="DR-0001",
        name="Kitchen dispenser",
        slot_count=4,
        timezone="UTC",
        battery_level=90,
        last_status="online",
    )
    db_session.add(device)
    db_session.commit()
    db_session.refresh(device)
    return device


@pytest.fixture
def test_patient(db_session: Session, patient_user: User, test_device: Device) -> Patient:
    """Create and return a patient linked to the test device"""
    patient = Patient(
        user_id=patient_user.id,
        device_id=test_device.id,
        illnesses=[{"name": "Type 2 Diabetes", "status": "ongoing"}],
        allergies=["Penicillin"],
        other_notes="",
    )
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def make_plan(db_session: Session, test_patient: Patient, test_device: Device) -> Callable[..., MedicationPlan]:
    """Factory creating active plans for the test patient"""

    def _make(
        slot_index: int = 1,
        medication_name: str = "Metformin",
        times=("08:00", "20:00"),
        days_of_week=(1, 2, 3, 4, 5, 6, 7),
        stock_remaining: int = 30,
        **kwargs
    ) -> MedicationPlan:
        plan = MedicationPlan(
            patient_id=test_patient.id,
            device_id=test_device.id,
            slot_index=slot_index,
            medication_name=medication_name,
            medication_strength=kwargs.pop("medication_strength", "500mg"),
            medication_form="tablet",
            dosage_per_intake=kwargs.pop("dosage_per_intake", 1),
            times=list(times),
            days_of_week=list(days_of_week),
            start_date=kwargs.pop("start_date", datetime(2026, 10, 1)),
            active=kwargs.pop("active", True),
            stock_remaining=stock_remaining,
            stock_total_loaded=max(stock_remaining, 30),
            **kwargs
        )
        db_session.add(plan)
        db_session.commit()
        db_session.refresh(plan)
        return plan

    return _make


@pytest.fixture
def test_plan(make_plan) -> MedicationPlan:
    """Metformin at 08:00 and 20:00 every day, slot 1"""
    return make_plan()


@pytest.fixture
def make_dose(db_session: Session) -> Callable[..., DoseLog]:
    """Factory creating persisted dose logs for a plan"""

    def _make(plan: MedicationPlan, scheduled_at: datetime, status: DoseStatus = DoseStatus.PENDING, **kwargs) -> DoseLog:
        dose = DoseLog(
            patient_id=plan.patient_id,
            device_id=plan.device_id,
            medication_plan_id=plan.id,
            slot_index=plan.slot_index,
            scheduled_at=scheduled_at,
            status=status,
            **kwargs
        )
        db_session.add(dose)
        db_session.commit()
        db_session.refresh(dose)
        return dose

    return _make


@pytest.fixture
def approved_caretaker(db_session: Session, make_user, test_patient: Patient) -> User:
    caretaker = make_user(UserRole.CARETAKER, name="Ravi Rao")
    db_session.add(CaretakerLink(
        patient_id=test_patient.id,
        user_id=caretaker.id,
        relation="Son",
        approved=True,
    ))
    db_session.commit()
    return caretaker


@pytest.fixture
def linked_doctor(db_session: Session, make_user, test_patient: Patient) -> User:
    doctor = make_user(UserRole.DOCTOR, name="Dr. Mehta")
    test_patient.doctors.append(doctor)
    db_session.commit()
    return doctor


# ==================== AUTH FIXTURES ====================

def bearer(user: User) -> Dict[str, str]:
    token = create_access_token(user.id, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for() -> Callable[[User], Dict[str, str]]:
    """Build JWT headers for any user"""
    return bearer


@pytest.fixture
def auth_headers(patient_user: User) -> Dict[str, str]:
    return bearer(patient_user)


@pytest.fixture
def device_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {settings.DEVICE_API_KEY}"}


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")
