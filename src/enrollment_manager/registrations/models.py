"""Data models for the Registrations module."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from enrollment_manager.store import EnrollmentSession, Registration, Student


@dataclass
class StudentFields:
    """Validated student data submitted with a registration.

    Attributes:
        full_name: Student's full name.
        email: Normalized email address.
        phone: Normalized phone number.
        cin: National identity card number.
        birthdate: Date of birth (optional).
        city: City of residence (optional).
        notes: Free-form message (optional).
    """

    full_name: str
    email: str
    phone: str
    cin: str
    birthdate: date | None = None
    city: str = ""
    notes: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "cin": self.cin,
            "birthdate": self.birthdate,
            "city": self.city,
            "notes": self.notes,
        }


@dataclass
class RegistrationDetail:
    """A registration with the student and session it binds.

    Attributes:
        registration: The registration row.
        student: The resolved student.
        session: The session the seat belongs to.
        receipt_url: Receipt location, empty when none could be produced.
    """

    registration: Registration
    student: Student
    session: EnrollmentSession
    receipt_url: str = ""


@dataclass
class RegistrationFilters:
    """Filters for listing registrations."""

    session_id: str | None = None
    status: str | None = None
    search: str | None = None


@dataclass
class RegistrationPage:
    """One page of registrations plus the total match count."""

    items: list[RegistrationDetail] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 50


@dataclass
class CapacitySnapshot:
    """Seat usage of a session and duplicate hints for a contact.

    Attributes:
        session_id: The session's unique ID.
        total_seats: Configured capacity (0 = unlimited).
        committed: Confirmed and paid registrations.
        active_locks: Pending registrations with a live lock.
        available: Free seats, or None when unlimited.
        exists_email: The email already holds a non-canceled registration.
        exists_phone: The phone already holds a non-canceled registration.
    """

    session_id: str
    total_seats: int
    committed: int
    active_locks: int
    available: int | None
    exists_email: bool = False
    exists_phone: bool = False


@dataclass
class DashboardMetrics:
    """Headline numbers for the admin dashboard."""

    today_registrations: int
    total_students: int
    upcoming_sessions: int
    seats_left: int
    by_status: dict[str, int] = field(default_factory=dict)
