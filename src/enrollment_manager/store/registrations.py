"""RegistrationRepository - persistence and read projections for registrations."""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select, update

from enrollment_manager.store.exceptions import RegistrationNotFoundError
from enrollment_manager.store.models import (
    LIKE_ESCAPE,
    EnrollmentSession,
    Registration,
    RegistrationStatus,
    Student,
    contains_pattern,
    utcnow,
)
from enrollment_manager.store.students import normalize_email, normalize_phone

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from enrollment_manager.store.database import Database

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "IBC"
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference(now: datetime | None = None) -> str:
    """Generate a human-readable registration reference like IBC-20261019-K3TQ."""
    now = now or utcnow()
    token = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(4))
    return f"{REFERENCE_PREFIX}-{now:%Y%m%d}-{token}"


class RegistrationRepository:
    """Persistence operations for Registration rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, registration_id: str, db_session: Session | None = None) -> Registration:
        """Get registration by ID.

        Raises:
            RegistrationNotFoundError: If registration doesn't exist
        """
        with self._db.session_scope(db_session) as s:
            registration = s.get(Registration, registration_id)
            if registration is None:
                raise RegistrationNotFoundError(
                    f"Registration with id '{registration_id}' not found"
                )
            return registration

    def find_by_reference(
        self, reference: str, db_session: Session | None = None
    ) -> Registration | None:
        """Get registration by its public reference, or None."""
        stmt = select(Registration).where(Registration.reference == reference.strip())
        with self._db.session_scope(db_session) as s:
            return s.execute(stmt).scalar_one_or_none()

    def find_by_session_student(
        self,
        session_id: str,
        student_id: str,
        db_session: Session | None = None,
    ) -> Registration | None:
        """Get the (unique) registration of a student in a session, or None."""
        stmt = select(Registration).where(
            Registration.session_id == session_id,
            Registration.student_id == student_id,
        )
        with self._db.session_scope(db_session) as s:
            return s.execute(stmt).scalar_one_or_none()

    def new_reference(self, db_session: Session | None = None) -> str:
        """Generate a reference no existing registration uses."""
        with self._db.session_scope(db_session) as s:
            while True:
                reference = generate_reference()
                taken = s.execute(
                    select(Registration.id).where(Registration.reference == reference)
                ).first()
                if taken is None:
                    return reference

    def add(self, registration: Registration, db_session: Session | None = None) -> Registration:
        """Persist a new registration row."""
        with self._db.session_scope(db_session) as s:
            s.add(registration)
            s.flush()
            return registration

    def has_active_contact(
        self,
        session_id: str,
        email: str | None = None,
        phone: str | None = None,
    ) -> bool:
        """Check whether a contact already holds a non-canceled registration in a session."""
        email = normalize_email(email)
        phone = normalize_phone(phone)
        conditions = []
        if email:
            conditions.append(Student.email == email)
        if phone:
            conditions.append(Student.phone == phone)
        if not conditions:
            return False

        stmt = (
            select(Registration.id)
            .join(Student, Student.id == Registration.student_id)
            .where(
                Registration.session_id == session_id,
                Registration.status != RegistrationStatus.CANCELED.value,
                or_(*conditions),
            )
            .limit(1)
        )
        with self._db.session_scope() as s:
            return s.execute(stmt).first() is not None

    def list_detailed(
        self,
        session_id: str | None = None,
        status: RegistrationStatus | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[tuple[Registration, Student, EnrollmentSession]], int]:
        """List registrations joined with their student and session.

        Args:
            session_id: Filter by session (optional)
            status: Filter by status (optional)
            search: Case-insensitive substring of full_name, email or phone (optional)
            limit: Max results (0 = no limit)
            offset: Offset for pagination

        Returns:
            Tuple of (rows, total matching count), rows newest first
        """
        conditions = []
        if session_id:
            conditions.append(Registration.session_id == session_id)
        if status is not None:
            conditions.append(Registration.status == RegistrationStatus(status).value)
        if search:
            like = contains_pattern(search)
            conditions.append(
                or_(
                    func.lower(Student.full_name).like(like, escape=LIKE_ESCAPE),
                    func.lower(Student.email).like(like, escape=LIKE_ESCAPE),
                    func.lower(Student.phone).like(like, escape=LIKE_ESCAPE),
                )
            )

        base = (
            select(Registration, Student, EnrollmentSession)
            .join(Student, Student.id == Registration.student_id)
            .join(EnrollmentSession, EnrollmentSession.id == Registration.session_id)
            .where(*conditions)
        )
        count_stmt = (
            select(func.count(Registration.id))
            .join(Student, Student.id == Registration.student_id)
            .join(EnrollmentSession, EnrollmentSession.id == Registration.session_id)
            .where(*conditions)
        )
        stmt = base.order_by(Registration.created_at.desc(), Registration.id.desc())
        if limit > 0:
            stmt = stmt.limit(limit).offset(offset)

        with self._db.session_scope() as s:
            total = s.execute(count_stmt).scalar_one()
            rows = [(r, st, se) for r, st, se in s.execute(stmt).all()]
            return rows, total

    def session_ids_for_student(self, student_id: str) -> list[str]:
        """Distinct session IDs a student holds registrations in."""
        stmt = (
            select(Registration.session_id)
            .where(Registration.student_id == student_id)
            .distinct()
        )
        with self._db.session_scope() as s:
            return list(s.execute(stmt).scalars().all())

    def expired_candidates(self, now: datetime) -> list[tuple[str, str]]:
        """Pending registrations whose seat lock has lapsed.

        Returns:
            List of (registration_id, session_id) pairs
        """
        stmt = select(Registration.id, Registration.session_id).where(
            Registration.status == RegistrationStatus.PENDING.value,
            Registration.seat_lock_until.is_not(None),
            Registration.seat_lock_until < now,
        )
        with self._db.session_scope() as s:
            return [(row.id, row.session_id) for row in s.execute(stmt).all()]

    def cancel_if_expired(self, registration_id: str, now: datetime) -> bool:
        """Cancel one registration if, at write time, it is still pending and expired.

        The condition is re-evaluated by the UPDATE itself, so a row that was
        confirmed or re-locked since it was selected is left alone.

        Returns:
            True if the row was canceled by this call
        """
        stmt = (
            update(Registration)
            .where(
                Registration.id == registration_id,
                Registration.status == RegistrationStatus.PENDING.value,
                Registration.seat_lock_until.is_not(None),
                Registration.seat_lock_until < now,
            )
            .values(
                status=RegistrationStatus.CANCELED.value,
                seat_lock_until=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with self._db.session_scope() as s:
            return (s.execute(stmt).rowcount or 0) > 0

    def count_by_status(self) -> dict[str, int]:
        """Count registrations grouped by status."""
        stmt = select(Registration.status, func.count(Registration.id)).group_by(
            Registration.status
        )
        with self._db.session_scope() as s:
            return {status: total for status, total in s.execute(stmt).all()}

    def count_created_between(self, start: datetime, end: datetime) -> int:
        """Count registrations created in [start, end]."""
        stmt = select(func.count(Registration.id)).where(
            Registration.created_at >= start,
            Registration.created_at <= end,
        )
        with self._db.session_scope() as s:
            return s.execute(stmt).scalar_one()
