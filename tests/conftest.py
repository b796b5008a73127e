"""Shared pytest fixtures and configuration."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest

from enrollment_manager.auth import AllowAllAuthorizer
from enrollment_manager.capacity import CapacityLedger, SeatLockManager
from enrollment_manager.registrations import Receipt, RegistrationService
from enrollment_manager.store import (
    Database,
    EnrollmentSession,
    RegistrationRepository,
    SessionRepository,
    SessionStatus,
    StudentRepository,
)


# Register custom markers
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: fast tests with no external dependencies")
    config.addinivalue_line("markers", "integration: component interaction tests")


class FakeClock:
    """Controllable replacement for utcnow()."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


def student_fields(n: int = 1, **overrides: Any) -> dict[str, Any]:
    """Valid registration form data for the n-th test student."""
    fields: dict[str, Any] = {
        "full_name": f"Student {n}",
        "email": f"student{n}@example.ma",
        "phone": f"06{n:08d}",
        "cin": f"AB{n:06d}",
        "city": "Rabat",
    }
    fields.update(overrides)
    return fields


# Shared fixtures


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db():
    """Create an in-memory database with tables."""
    database = Database(":memory:")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def sessions(db: Database) -> SessionRepository:
    return SessionRepository(db)


@pytest.fixture
def students(db: Database) -> StudentRepository:
    return StudentRepository(db)


@pytest.fixture
def registrations(db: Database) -> RegistrationRepository:
    return RegistrationRepository(db)


@pytest.fixture
def ledger(db: Database, sessions: SessionRepository, clock: FakeClock) -> CapacityLedger:
    return CapacityLedger(db, sessions, clock=clock)


@pytest.fixture
def seat_locks(
    ledger: CapacityLedger, registrations: RegistrationRepository, clock: FakeClock
) -> SeatLockManager:
    return SeatLockManager(ledger, registrations, clock=clock)


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def receipts() -> MagicMock:
    mock = MagicMock()
    mock.generate.return_value = Receipt(url="https://receipts.example.ma/r.pdf")
    return mock


@pytest.fixture
def service(
    db: Database,
    sessions: SessionRepository,
    students: StudentRepository,
    registrations: RegistrationRepository,
    ledger: CapacityLedger,
    seat_locks: SeatLockManager,
    notifier: MagicMock,
    receipts: MagicMock,
    clock: FakeClock,
) -> RegistrationService:
    return RegistrationService(
        db=db,
        sessions=sessions,
        students=students,
        registrations=registrations,
        ledger=ledger,
        seat_locks=seat_locks,
        authorizer=AllowAllAuthorizer(),
        notifier=notifier,
        receipts=receipts,
        clock=clock,
    )


@pytest.fixture
def make_session(sessions: SessionRepository, clock: FakeClock):
    """Factory for published sessions whose registration window contains the clock."""

    def _make(total_seats: int = 1, **overrides: Any) -> EnrollmentSession:
        fields: dict[str, Any] = {
            "title": "TCF Prep - March",
            "session_type": "prep",
            "level": "B2",
            "campus": "Rabat Agdal",
            "reg_start": clock.now - timedelta(days=7),
            "reg_end": clock.now + timedelta(days=7),
            "start_at": clock.now + timedelta(days=14),
            "end_at": clock.now + timedelta(days=21),
            "total_seats": total_seats,
            "price": "1500.00",
            "status": SessionStatus.PUBLISHED,
        }
        fields.update(overrides)
        return sessions.insert(**fields)

    return _make


@pytest.fixture
def form():
    """Factory for valid registration form data."""
    return student_fields
