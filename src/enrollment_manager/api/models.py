"""Pydantic models for REST API."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    success: bool = True
    data: T | None = None
    message: str | None = None


# Session models


class SessionCreate(BaseModel):
    """Request model for creating a session."""

    title: str = Field(..., min_length=1, max_length=255)
    session_type: str = Field(default="prep", pattern=r"^(prep|exam|bundle)$")
    level: str = Field(default="", max_length=100)
    campus: str = Field(default="", max_length=120)
    reg_start: datetime | None = None
    reg_end: datetime | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    total_seats: int = Field(default=0, ge=0)
    price: Decimal = Field(default=Decimal("0.00"), ge=0)
    currency: str = Field(default="MAD", min_length=1, max_length=10)
    status: str = Field(default="draft", pattern=r"^(draft|published|closed)$")
    notes: str | None = None


class SessionUpdate(BaseModel):
    """Request model for updating a session (partial update)."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    session_type: str | None = Field(default=None, pattern=r"^(prep|exam|bundle)$")
    level: str | None = Field(default=None, max_length=100)
    campus: str | None = Field(default=None, max_length=120)
    reg_start: datetime | None = None
    reg_end: datetime | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    total_seats: int | None = Field(default=None, ge=0)
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=1, max_length=10)
    status: str | None = Field(default=None, pattern=r"^(draft|published|closed)$")
    notes: str | None = None


class SessionResponse(BaseModel):
    """Response model for a session."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    session_type: str
    level: str
    campus: str
    reg_start: datetime | None
    reg_end: datetime | None
    start_at: datetime | None
    end_at: datetime | None
    total_seats: int
    seats_taken: int
    price: Decimal
    currency: str
    status: str
    notes: str | None


def session_to_response(session: Any) -> SessionResponse:
    """Convert an EnrollmentSession model to SessionResponse."""
    return SessionResponse.model_validate(session)


class CapacityResponse(BaseModel):
    """Response model for a session's seat usage."""

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    total_seats: int
    committed: int
    active_locks: int
    available: int | None
    exists_email: bool
    exists_phone: bool


# Student models


class StudentResponse(BaseModel):
    """Response model for a student."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    full_name: str
    email: str | None
    phone: str | None
    cin: str
    birthdate: date | None
    city: str


class StudentMerge(BaseModel):
    """Request model for merging duplicate students."""

    primary_id: str = Field(..., min_length=1)
    duplicate_ids: list[str] = Field(..., min_length=1)


class MergeResponse(BaseModel):
    """Response model for a student merge."""

    merged: int


# Registration models


class RegistrationCreate(BaseModel):
    """Request model for a public registration.

    Student fields arrive either nested under ``studentFields`` or flat at the
    top level. Flat fields default to empty so the service can report every
    missing field at once.
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")
    nested_fields: dict[str, Any] | None = Field(default=None, alias="studentFields")
    full_name: str = Field(default="", max_length=200)
    email: str = Field(default="", max_length=180)
    phone: str = Field(default="", max_length=25)
    cin: str = Field(default="", max_length=60)
    birthdate: date | None = None
    city: str = Field(default="", max_length=120)
    notes: str | None = None

    def student_fields(self) -> dict[str, Any]:
        if self.nested_fields is not None:
            return dict(self.nested_fields)
        return self.model_dump(exclude={"session_id", "nested_fields"})


class RegistrationUpdate(BaseModel):
    """Request model for an admin edit of a registration."""

    status: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    payment_method: str | None = Field(default=None, max_length=50)
    payment_ref: str | None = Field(default=None, max_length=100)
    notes: str | None = None


class RegistrationResponse(BaseModel):
    """Response model for a registration row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    session_id: str
    student_id: str
    status: str
    amount: Decimal
    currency: str
    payment_method: str
    payment_ref: str
    seat_lock_until: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class RegistrationDetailResponse(BaseModel):
    """Response model for a registration with its student and session."""

    registration: RegistrationResponse
    student: StudentResponse
    session: SessionResponse
    receipt_url: str = ""


def detail_to_response(detail: Any) -> RegistrationDetailResponse:
    """Convert a RegistrationDetail to RegistrationDetailResponse."""
    return RegistrationDetailResponse(
        registration=RegistrationResponse.model_validate(detail.registration),
        student=StudentResponse.model_validate(detail.student),
        session=SessionResponse.model_validate(detail.session),
        receipt_url=detail.receipt_url,
    )


class RegistrationPageResponse(BaseModel):
    """Response model for one page of registrations."""

    items: list[RegistrationDetailResponse]
    total: int
    page: int
    per_page: int


# Stats models


class StatsResponse(BaseModel):
    """Response model for dashboard metrics."""

    model_config = ConfigDict(from_attributes=True)

    today_registrations: int
    total_students: int
    upcoming_sessions: int
    seats_left: int
    by_status: dict[str, int]
