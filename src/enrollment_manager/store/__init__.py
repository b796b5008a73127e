"""Store - Persistent storage for sessions, students and registrations."""

from enrollment_manager.store.database import Database
from enrollment_manager.store.exceptions import (
    ConflictError,
    PersistenceError,
    RegistrationNotFoundError,
    SessionNotFoundError,
    StoreError,
    StudentNotFoundError,
)
from enrollment_manager.store.models import (
    COMMITTED_STATUSES,
    EnrollmentSession,
    Registration,
    RegistrationStatus,
    SessionStatus,
    SessionType,
    Student,
    utcnow,
)
from enrollment_manager.store.registrations import RegistrationRepository, generate_reference
from enrollment_manager.store.sessions import SessionRepository
from enrollment_manager.store.students import (
    StudentRepository,
    normalize_email,
    normalize_phone,
)

__all__ = [
    "COMMITTED_STATUSES",
    "ConflictError",
    "Database",
    "EnrollmentSession",
    "PersistenceError",
    "Registration",
    "RegistrationNotFoundError",
    "RegistrationRepository",
    "RegistrationStatus",
    "SessionNotFoundError",
    "SessionRepository",
    "SessionStatus",
    "SessionType",
    "StoreError",
    "Student",
    "StudentNotFoundError",
    "StudentRepository",
    "generate_reference",
    "normalize_email",
    "normalize_phone",
    "utcnow",
]
