"""SessionRepository - CRUD and seat bookkeeping for enrollment sessions."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_, select, update

from enrollment_manager.store.exceptions import SessionNotFoundError
from enrollment_manager.store.models import (
    LIKE_ESCAPE,
    EnrollmentSession,
    SessionStatus,
    SessionType,
    contains_pattern,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from enrollment_manager.store.database import Database

logger = logging.getLogger(__name__)

_ORDERABLE_COLUMNS = {
    "start_at": EnrollmentSession.start_at,
    "reg_start": EnrollmentSession.reg_start,
    "title": EnrollmentSession.title,
    "status": EnrollmentSession.status,
}

# seats_taken is deliberately absent: only set_seats_taken writes it
_UPDATABLE_FIELDS = (
    "title",
    "session_type",
    "level",
    "campus",
    "reg_start",
    "reg_end",
    "start_at",
    "end_at",
    "total_seats",
    "price",
    "currency",
    "status",
    "notes",
)


class SessionRepository:
    """Persistence operations for EnrollmentSession rows."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, session_id: str, db_session: Session | None = None) -> EnrollmentSession:
        """Get session by ID.

        Args:
            session_id: The session's unique ID
            db_session: Open SQLAlchemy session to join (optional)

        Returns:
            The EnrollmentSession object

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        with self._db.session_scope(db_session) as s:
            session = s.get(EnrollmentSession, session_id)
            if session is None:
                raise SessionNotFoundError(f"Session with id '{session_id}' not found")
            return session

    def list(
        self,
        status: SessionStatus | None = None,
        search: str | None = None,
        order_by: str = "start_at",
        descending: bool = False,
        limit: int = 0,
        offset: int = 0,
    ) -> list[EnrollmentSession]:
        """List sessions with optional filters.

        Args:
            status: Filter by status (optional)
            search: Case-insensitive match on title, campus or level (optional)
            order_by: One of start_at, reg_start, title, status. Unknown
                values fall back to start_at.
            descending: Reverse the ordering
            limit: Max results (0 = no limit)
            offset: Offset for pagination

        Returns:
            List of sessions
        """
        column = _ORDERABLE_COLUMNS.get(order_by, EnrollmentSession.start_at)
        stmt = select(EnrollmentSession)

        if status is not None:
            stmt = stmt.where(EnrollmentSession.status == SessionStatus(status).value)
        if search:
            like = contains_pattern(search)
            stmt = stmt.where(
                or_(
                    EnrollmentSession.title.ilike(like, escape=LIKE_ESCAPE),
                    EnrollmentSession.campus.ilike(like, escape=LIKE_ESCAPE),
                    EnrollmentSession.level.ilike(like, escape=LIKE_ESCAPE),
                )
            )

        stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit > 0:
            stmt = stmt.limit(limit).offset(offset)

        with self._db.session_scope() as s:
            return list(s.execute(stmt).scalars().all())

    def list_open(self, now: datetime | None = None) -> list[EnrollmentSession]:
        """List sessions currently accepting public registrations.

        A session is open when published, inside its registration window and
        not full by committed seats.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Open sessions ordered by start time
        """
        now = now or utcnow()
        stmt = (
            select(EnrollmentSession)
            .where(
                EnrollmentSession.status == SessionStatus.PUBLISHED.value,
                or_(EnrollmentSession.reg_start.is_(None), EnrollmentSession.reg_start <= now),
                or_(EnrollmentSession.reg_end.is_(None), EnrollmentSession.reg_end >= now),
                or_(
                    EnrollmentSession.total_seats == 0,
                    EnrollmentSession.total_seats > EnrollmentSession.seats_taken,
                ),
            )
            .order_by(EnrollmentSession.start_at.asc())
        )
        with self._db.session_scope() as s:
            return list(s.execute(stmt).scalars().all())

    def insert(
        self,
        title: str,
        session_type: SessionType | str = SessionType.PREP,
        level: str = "",
        campus: str = "",
        reg_start: datetime | None = None,
        reg_end: datetime | None = None,
        start_at: datetime | None = None,
        end_at: datetime | None = None,
        total_seats: int = 0,
        price: Decimal | int | str = Decimal("0.00"),
        currency: str = "MAD",
        status: SessionStatus | str = SessionStatus.DRAFT,
        notes: str | None = None,
    ) -> EnrollmentSession:
        """Create a new session.

        seats_taken always starts at 0; it is owned by the capacity ledger.

        Returns:
            Created EnrollmentSession with generated ID

        Raises:
            ValueError: If a field fails model validation
        """
        with self._db.session_scope() as s:
            session = EnrollmentSession(
                title=title,
                session_type=SessionType(session_type).value,
                level=level,
                campus=campus,
                reg_start=reg_start,
                reg_end=reg_end,
                start_at=start_at,
                end_at=end_at,
                total_seats=total_seats,
                price=price,
                currency=currency,
                status=SessionStatus(status).value,
                notes=notes,
            )
            s.add(session)
            s.flush()
            s.refresh(session)
        logger.info("Created session %s (%s)", session.id, session.title)
        return session

    def update(self, session_id: str, **fields: Any) -> EnrollmentSession:
        """Update session fields. Only provided, non-None fields are updated.

        Args:
            session_id: The session's unique ID
            **fields: Any of the updatable session fields

        Returns:
            The updated EnrollmentSession

        Raises:
            SessionNotFoundError: If session doesn't exist
            ValueError: If an unknown or read-only field is given, or a value is invalid
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")

        with self._db.session_scope() as s:
            session = s.get(EnrollmentSession, session_id)
            if session is None:
                raise SessionNotFoundError(f"Session with id '{session_id}' not found")

            for name, value in fields.items():
                if value is None:
                    continue
                if name == "session_type":
                    value = SessionType(value).value
                elif name == "status":
                    value = SessionStatus(value).value
                elif name == "total_seats":
                    value = int(value)
                    if value < 0:
                        raise ValueError("total_seats must not be negative")
                elif name == "price":
                    value = Decimal(str(value))
                    if value < 0:
                        raise ValueError("price must not be negative")
                elif name == "title" and not str(value).strip():
                    raise ValueError("title must not be empty")
                setattr(session, name, value)

            s.flush()
            s.refresh(session)
            return session

    def delete(self, session_id: str) -> None:
        """Delete a session and, in the same transaction, its registrations.

        Args:
            session_id: The session's unique ID

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        with self._db.session_scope() as s:
            session = s.get(EnrollmentSession, session_id)
            if session is None:
                raise SessionNotFoundError(f"Session with id '{session_id}' not found")
            s.delete(session)
        logger.info("Deleted session %s", session_id)

    def set_seats_taken(
        self,
        session_id: str,
        count: int,
        db_session: Session | None = None,
    ) -> None:
        """Persist the cached seat count for a session.

        Only the capacity ledger calls this; the value is always recomputed
        from registrations, so concurrent writers are last-writer-wins.

        Raises:
            SessionNotFoundError: If session doesn't exist
        """
        stmt = (
            update(EnrollmentSession)
            .where(EnrollmentSession.id == session_id)
            .values(seats_taken=max(0, count), updated_at=utcnow())
        )
        with self._db.session_scope(db_session) as s:
            result = s.execute(stmt)
            if result.rowcount == 0:
                raise SessionNotFoundError(f"Session with id '{session_id}' not found")
