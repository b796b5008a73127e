"""StudentRepository - identity resolution and merging of student records."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update

from enrollment_manager.store.exceptions import StudentNotFoundError
from enrollment_manager.store.models import (
    COMMITTED_STATUSES,
    LIKE_ESCAPE,
    Registration,
    RegistrationStatus,
    Student,
    contains_pattern,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from enrollment_manager.store.database import Database

logger = logging.getLogger(__name__)

_LOCAL_MOBILE = re.compile(r"^0[5-7][0-9]{8}$")
_PROFILE_FIELDS = ("full_name", "cin", "birthdate", "city", "notes")


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address."""
    return (email or "").strip().lower()


def normalize_phone(phone: str | None) -> str:
    """Normalize a phone number to the +212 international form when possible.

    Everything except digits and ``+`` is stripped. Local mobile numbers
    (``06XXXXXXXX``) and bare ``212`` prefixes are rewritten; anything else
    is returned as the stripped digits.
    """
    digits = re.sub(r"[^0-9+]", "", phone or "")
    if not digits:
        return ""
    if digits.startswith("+212"):
        return digits
    if _LOCAL_MOBILE.match(digits):
        return "+212" + digits[1:]
    if digits.startswith("212") and len(digits) >= 11:
        return "+" + digits
    return digits


def _strength(status: str) -> int:
    """Rank a registration status for merge conflict resolution."""
    if status in {s.value for s in COMMITTED_STATUSES}:
        return 2
    if status == RegistrationStatus.PENDING.value:
        return 1
    return 0


class StudentRepository:
    """Persistence operations for Student rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, student_id: str, db_session: Session | None = None) -> Student:
        """Get student by ID.

        Raises:
            StudentNotFoundError: If student doesn't exist
        """
        with self._db.session_scope(db_session) as s:
            student = s.get(Student, student_id)
            if student is None:
                raise StudentNotFoundError(f"Student with id '{student_id}' not found")
            return student

    def find_by_contact(
        self,
        email: str | None,
        phone: str | None,
        db_session: Session | None = None,
    ) -> Student | None:
        """Locate a student whose email OR phone matches.

        An email match wins over a phone match when they point at different
        students.

        Args:
            email: Email address (normalized before matching)
            phone: Phone number (normalized before matching)
            db_session: Open SQLAlchemy session to join (optional)

        Returns:
            The matching Student, or None
        """
        email = normalize_email(email)
        phone = normalize_phone(phone)
        conditions = []
        if email:
            conditions.append(Student.email == email)
        if phone:
            conditions.append(Student.phone == phone)
        if not conditions:
            return None

        with self._db.session_scope(db_session) as s:
            matches = s.execute(select(Student).where(or_(*conditions))).scalars().all()
            for student in matches:
                if email and student.email == email:
                    return student
            return matches[0] if matches else None

    def upsert(self, fields: Mapping[str, Any], db_session: Session | None = None) -> str:
        """Insert a student or update the one matching by email or phone.

        Empty values never overwrite stored data. A contact value already
        owned by a different student is left untouched so the unique
        constraints hold.

        Args:
            fields: full_name, email, phone, cin, birthdate, city, notes
            db_session: Open SQLAlchemy session to join (optional)

        Returns:
            The student's ID
        """
        email = normalize_email(fields.get("email"))
        phone = normalize_phone(fields.get("phone"))

        with self._db.session_scope(db_session) as s:
            existing = self.find_by_contact(email, phone, db_session=s)

            if existing is None:
                student = Student(
                    full_name=fields.get("full_name", ""),
                    email=email or None,
                    phone=phone or None,
                    cin=fields.get("cin") or "",
                    birthdate=fields.get("birthdate"),
                    city=fields.get("city") or "",
                    notes=fields.get("notes"),
                )
                s.add(student)
                s.flush()
                logger.info("Created student %s", student.id)
                return student.id

            for name in _PROFILE_FIELDS:
                value = fields.get(name)
                if value not in (None, ""):
                    setattr(existing, name, value)

            for name, value in (("email", email), ("phone", phone)):
                if not value or getattr(existing, name) == value:
                    continue
                owner = s.execute(
                    select(Student.id).where(getattr(Student, name) == value)
                ).scalar_one_or_none()
                if owner is None:
                    setattr(existing, name, value)
                else:
                    logger.warning(
                        "Not moving %s to student %s: already owned by student %s",
                        name,
                        existing.id,
                        owner,
                    )

            existing.updated_at = utcnow()
            s.flush()
            return existing.id

    def list(self, search: str | None = None, limit: int = 50, offset: int = 0) -> list[Student]:
        """List students, most recently updated first.

        Args:
            search: Case-insensitive match on full_name, email or phone (optional)
            limit: Max results (0 = no limit)
            offset: Offset for pagination
        """
        stmt = select(Student)
        if search:
            like = contains_pattern(search)
            stmt = stmt.where(
                or_(
                    Student.full_name.ilike(like, escape=LIKE_ESCAPE),
                    Student.email.ilike(like, escape=LIKE_ESCAPE),
                    Student.phone.ilike(like, escape=LIKE_ESCAPE),
                )
            )
        stmt = stmt.order_by(Student.updated_at.desc())
        if limit > 0:
            stmt = stmt.limit(limit).offset(offset)

        with self._db.session_scope() as s:
            return list(s.execute(stmt).scalars().all())

    def count(self) -> int:
        """Total number of students."""
        with self._db.session_scope() as s:
            return s.execute(select(func.count(Student.id))).scalar_one()

    def merge(self, primary_id: str, duplicate_ids: list[str]) -> int:
        """Fold duplicate students into a primary record.

        Registrations of the duplicates are reassigned to the primary, then
        the duplicates are deleted, all in one transaction. When both hold a
        registration for the same session the stronger one survives
        (committed beats pending beats canceled) so the session/student pair
        stays unique.

        Args:
            primary_id: Destination student ID
            duplicate_ids: Student IDs to fold into the primary

        Returns:
            Number of duplicate students deleted

        Raises:
            StudentNotFoundError: If the primary student doesn't exist
        """
        duplicates = sorted({d for d in duplicate_ids if d and d != primary_id})
        if not duplicates:
            return 0

        with self._db.session_scope() as s:
            if s.get(Student, primary_id) is None:
                raise StudentNotFoundError(f"Student with id '{primary_id}' not found")

            kept: dict[str, Registration] = {
                r.session_id: r
                for r in s.execute(
                    select(Registration).where(Registration.student_id == primary_id)
                ).scalars()
            }
            incoming = s.execute(
                select(Registration)
                .where(Registration.student_id.in_(duplicates))
                .order_by(Registration.created_at.asc())
            ).scalars()

            losers: list[str] = []
            for registration in incoming:
                current = kept.get(registration.session_id)
                if current is None:
                    kept[registration.session_id] = registration
                elif _strength(registration.status) > _strength(current.status):
                    losers.append(current.id)
                    kept[registration.session_id] = registration
                else:
                    losers.append(registration.id)

            if losers:
                s.execute(delete(Registration).where(Registration.id.in_(losers)))
            s.execute(
                update(Registration)
                .where(Registration.student_id.in_(duplicates))
                .values(student_id=primary_id, updated_at=utcnow()),
                execution_options={"synchronize_session": False},
            )
            result = s.execute(delete(Student).where(Student.id.in_(duplicates)))
            merged = result.rowcount or 0

        logger.info(
            "Merged %d duplicate student(s) into %s (%d conflicting registration(s) dropped)",
            merged,
            primary_id,
            len(losers),
        )
        return merged
