"""SQLAlchemy models for the Store."""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

DEFAULT_CURRENCY = "MAD"


class SessionType(StrEnum):
    """Kind of enrollment session."""

    PREP = "prep"
    EXAM = "exam"
    BUNDLE = "bundle"


class SessionStatus(StrEnum):
    """Publication status of a session."""

    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class RegistrationStatus(StrEnum):
    """Registration status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELED = "canceled"


# Statuses that count permanently against a session's capacity
COMMITTED_STATUSES = (RegistrationStatus.CONFIRMED, RegistrationStatus.PAID)


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form SQLite stores."""
    return datetime.now(UTC).replace(tzinfo=None)


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """Lower-cased LIKE pattern matching ``term`` literally anywhere in a value.

    Use with ``escape=LIKE_ESCAPE`` so ``%`` and ``_`` in the term are not wildcards.
    """
    escaped = term.strip().lower()
    for char in (LIKE_ESCAPE, "%", "_"):
        escaped = escaped.replace(char, LIKE_ESCAPE + char)
    return f"%{escaped}%"


def _require_text(value: str | None, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{field_name} must not be empty")
    return str(value).strip()


def _require_non_negative(value: Any, field_name: str) -> Any:
    if value < 0:
        raise ValueError(f"{field_name} must not be negative")
    return value


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class EnrollmentSession(Base):
    """Session model - a class or exam with finite seating."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    session_type: Mapped[str] = mapped_column("type", String(20), nullable=False, index=True)
    level: Mapped[str] = mapped_column(String(100), nullable=False)
    campus: Mapped[str] = mapped_column(String(120), nullable=False)
    reg_start: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reg_end: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    start_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    seats_taken: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    registrations: Mapped[list[Registration]] = relationship(
        "Registration",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __init__(
        self,
        title: str,
        id: str | None = None,
        session_type: str = SessionType.PREP.value,
        level: str = "",
        campus: str = "",
        reg_start: datetime | None = None,
        reg_end: datetime | None = None,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        total_seats: int = 0,
        seats_taken: int = 0,
        price: Decimal | int | str = Decimal("0.00"),
        currency: str = DEFAULT_CURRENCY,
        status: str = SessionStatus.DRAFT.value,
        notes: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.title = _require_text(title, "title")
        self.session_type = SessionType(session_type).value
        self.level = level or ""
        self.campus = campus or ""
        self.reg_start = reg_start
        self.reg_end = reg_end
        self.start_at = start_at
        self.end_at = end_at
        self.total_seats = _require_non_negative(int(total_seats), "total_seats")
        self.seats_taken = _require_non_negative(int(seats_taken), "seats_taken")
        self.price = _require_non_negative(Decimal(str(price)), "price")
        self.currency = currency or DEFAULT_CURRENCY
        self.status = SessionStatus(status).value
        self.notes = notes

    @property
    def session_status(self) -> SessionStatus:
        """Get status as SessionStatus enum."""
        return SessionStatus(self.status)

    @property
    def is_unlimited(self) -> bool:
        """A session with zero total seats never runs out of capacity."""
        return self.total_seats == 0

    def registration_open_at(self, now: datetime) -> bool:
        """Check whether ``now`` falls inside the registration window.

        Either bound may be unset, in which case that side is open.
        """
        if self.reg_start is not None and now < self.reg_start:
            return False
        if self.reg_end is not None and now > self.reg_end:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<EnrollmentSession(id={self.id!r}, title={self.title!r}, "
            f"seats={self.seats_taken}/{self.total_seats})>"
        )


class Student(Base):
    """Student model - identity resolved by email or phone."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(180), nullable=True, unique=True)
    phone: Mapped[str | None] = mapped_column(String(25), nullable=True, unique=True)
    cin: Mapped[str] = mapped_column(String(60), nullable=False)
    birthdate: Mapped[date | None] = mapped_column(Date, nullable=True)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    registrations: Mapped[list[Registration]] = relationship(
        "Registration",
        back_populates="student",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __init__(
        self,
        full_name: str,
        id: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        cin: str = "",
        birthdate: date | None = None,
        city: str = "",
        notes: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.full_name = _require_text(full_name, "full_name")
        self.email = email or None
        self.phone = phone or None
        self.cin = cin or ""
        self.birthdate = birthdate
        self.city = city or ""
        self.notes = notes

    def __repr__(self) -> str:
        return f"<Student(id={self.id!r}, full_name={self.full_name!r}, email={self.email!r})>"


class Registration(Base):
    """Registration model - one student's seat in one session."""

    __tablename__ = "registrations"
    __table_args__ = (UniqueConstraint("session_id", "student_id", name="uq_session_student"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False
    )
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("students.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    seat_lock_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    session: Mapped[EnrollmentSession] = relationship(
        "EnrollmentSession", back_populates="registrations"
    )
    student: Mapped[Student] = relationship("Student", back_populates="registrations")

    def __init__(
        self,
        session_id: str,
        student_id: str,
        reference: str,
        id: str | None = None,
        status: str | None = None,
        amount: Decimal | int | str = Decimal("0.00"),
        currency: str = DEFAULT_CURRENCY,
        payment_method: str = "",
        payment_ref: str = "",
        seat_lock_until: datetime | None = None,
        notes: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.session_id = session_id
        self.student_id = student_id
        self.reference = _require_text(reference, "reference")
        self.status = RegistrationStatus(status).value if status else RegistrationStatus.PENDING.value
        self.amount = _require_non_negative(Decimal(str(amount)), "amount")
        self.currency = currency or DEFAULT_CURRENCY
        self.payment_method = payment_method or ""
        self.payment_ref = payment_ref or ""
        self.seat_lock_until = seat_lock_until if self.is_pending else None
        self.notes = notes

    @property
    def registration_status(self) -> RegistrationStatus:
        """Get status as RegistrationStatus enum."""
        return RegistrationStatus(self.status)

    @registration_status.setter
    def registration_status(self, value: RegistrationStatus) -> None:
        """Set status from RegistrationStatus enum.

        Leaving ``pending`` always drops the seat lock.
        """
        self.status = value.value
        if value is not RegistrationStatus.PENDING:
            self.seat_lock_until = None

    @property
    def is_pending(self) -> bool:
        return self.status == RegistrationStatus.PENDING.value

    @property
    def is_committed(self) -> bool:
        """Confirmed and paid registrations hold their seat permanently."""
        return self.status in {s.value for s in COMMITTED_STATUSES}

    def lock_active_at(self, now: datetime) -> bool:
        """True while a pending registration still holds its temporary seat."""
        return self.is_pending and self.seat_lock_until is not None and self.seat_lock_until >= now

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id!r}, reference={self.reference!r}, "
            f"status={self.status!r})>"
        )
