"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all DoseSentinel tests.
Fixtures include database sessions, test clients, a frozen clock,
sample users and medications, and services wired to the test database.
"""

import os
import sys
from datetime import datetime, date, timezone
from typing import Generator, Callable

# Point the app at an in-memory database before config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SWEEP_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from models import (
    User, Medication, DoseLog, GuardianLink,
    UserRole, MedicationType, DoseOutcome, AdherenceClass, LinkStatus
)
from api.deps import services
from actions.reminder_engine import ReminderEngine
from services.adherence_service import AdherenceService
from services.analytics_service import AnalyticsService
from services.medication_service import MedicationService
from services.sweep_service import SweepService
from tools.notification_service import NotificationService
from tools.time_windows import FixedClock
from app import app


# 2025-03-10 is a Monday; every test day is anchored here unless it moves the clock
TEST_DAY = date(2025, 3, 10)


def utc(hour: int, minute: int = 0, day: date = TEST_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


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
def session_factory(test_engine) -> Callable[[], Session]:
    """Session factory bound to the test engine, for services that open their own units of work"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session"""
    session = session_factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==================== CLOCK / NOTIFIER ====================

@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 08:00 UTC on the test day"""
    return FixedClock(utc(8, 0))


@pytest.fixture
def notifier() -> NotificationService:
    """Fresh notification queue that records real-time publishes"""
    published = []
    service = NotificationService(
        realtime_publisher=lambda room, event_name, payload: published.append((room, event_name, payload))
    )
    service.published = published
    return service


# ==================== SERVICE FIXTURES ====================

@pytest.fixture
def adherence(clock, notifier, session_factory) -> AdherenceService:
    return AdherenceService(clock=clock, notifier=notifier, session_factory=session_factory)


@pytest.fixture
def sweeper(clock, notifier, session_factory) -> SweepService:
    return SweepService(session_factory=session_factory, clock=clock, notifier=notifier)


@pytest.fixture
def analytics(clock, session_factory) -> AnalyticsService:
    return AnalyticsService(clock=clock, session_factory=session_factory)


@pytest.fixture
def medications(clock, notifier, session_factory) -> MedicationService:
    return MedicationService(
        session_factory=session_factory,
        reminder_engine=ReminderEngine(notifier=notifier, clock=clock)
    )


# ==================== CLIENT ====================

@pytest.fixture(scope="function")
def client(db_session: Session, adherence, sweeper, analytics, medications) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database and service overrides"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[services.get_adherence_service] = lambda: adherence
    app.dependency_overrides[services.get_sweep_service] = lambda: sweeper
    app.dependency_overrides[services.get_analytics_service] = lambda: analytics
    app.dependency_overrides[services.get_medication_service] = lambda: medications

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def test_user(db_session: Session) -> User:
    """Create and return a patient in UTC"""
    user = User(
        name="Asha Rao",
        email="asha@example.com",
        role=UserRole.PATIENT,
        timezone="UTC",
        is_active=True
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def test_guardian(db_session: Session, test_user: User) -> User:
    """Create a guardian with an active link to the test patient"""
    guardian = User(
        name="Ravi Rao",
        email="ravi@example.com",
        role=UserRole.GUARDIAN,
        timezone="UTC",
        is_active=True
    )
    db_session.add(guardian)
    db_session.commit()

    link = GuardianLink(
        patient_id=test_user.id,
        guardian_id=guardian.id,
        initiated_by=test_user.id,
        status=LinkStatus.ACTIVE
    )
    db_session.add(link)
    db_session.commit()
    db_session.refresh(guardian)
    return guardian


@pytest.fixture
def test_medication(db_session: Session, test_user: User) -> Medication:
    """Scheduled medication at 08:00 with 30 units on hand"""
    medication = Medication(
        owner_id=test_user.id,
        name="Metformin",
        dosage="500mg",
        frequency="once daily",
        med_type=MedicationType.SCHEDULED,
        slots=["08:00"],
        total_quantity=30,
        remaining_quantity=30,
        start_date=TEST_DAY,
        is_active=True,
        is_deleted=False
    )
    db_session.add(medication)
    db_session.commit()
    db_session.refresh(medication)
    return medication


@pytest.fixture
def make_medication(db_session: Session, test_user: User):
    """Factory for extra medications on the test patient"""

    def _make(**overrides) -> Medication:
        data = {
            "owner_id": test_user.id,
            "name": "Lisinopril",
            "dosage": "10mg",
            "frequency": "once daily",
            "med_type": MedicationType.SCHEDULED,
            "slots": ["08:00"],
            "total_quantity": 30,
            "remaining_quantity": 30,
            "start_date": TEST_DAY,
            "is_active": True,
            "is_deleted": False,
        }
        data.update(overrides)
        medication = Medication(**data)
        db_session.add(medication)
        db_session.commit()
        db_session.refresh(medication)
        return medication

    return _make


@pytest.fixture
def add_log(db_session: Session, test_user: User):
    """Write a ledger entry directly, bypassing the recorder"""

    def _add(
        medication: Medication,
        slot_date: date,
        outcome: DoseOutcome = DoseOutcome.TAKEN,
        slot: str = "08:00",
        classification: AdherenceClass = None
    ) -> DoseLog:
        if classification is None:
            classification = AdherenceClass.MISSED if outcome == DoseOutcome.MISSED else AdherenceClass.ON_TIME
        log = DoseLog(
            user_id=test_user.id,
            medication_id=medication.id,
            scheduled_slot=slot,
            slot_date=slot_date,
            outcome=outcome,
            classification=classification,
            delay_minutes=0,
            reported_by="system" if outcome == DoseOutcome.MISSED else "patient",
            logged_at=datetime(slot_date.year, slot_date.month, slot_date.day, 12, 0)
        )
        db_session.add(log)
        db_session.commit()
        return log

    return _add


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Tests that use a file-backed database")
