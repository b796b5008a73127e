"""CapacityLedger - authoritative seat counts per session."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from enrollment_manager.store.models import (
    COMMITTED_STATUSES,
    Registration,
    RegistrationStatus,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from enrollment_manager.store import Database, EnrollmentSession, SessionRepository

logger = logging.getLogger(__name__)


class CapacityLedger:
    """Counts occupied seats from registration rows.

    The cached ``seats_taken`` column on a session is never read here; it is
    only ever written by :meth:`resync` from the committed count.
    """

    def __init__(
        self,
        db: Database,
        sessions: SessionRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the ledger.

        Args:
            db: Database holding registrations.
            sessions: Repository used to persist the cached seat count.
            clock: Source of the current UTC time.
        """
        self._db = db
        self._sessions = sessions
        self._clock = clock

    def count_committed(self, session_id: str, db_session: Session | None = None) -> int:
        """Count confirmed and paid registrations of a session."""
        stmt = select(func.count(Registration.id)).where(
            Registration.session_id == session_id,
            Registration.status.in_([s.value for s in COMMITTED_STATUSES]),
        )
        with self._db.session_scope(db_session) as s:
            return s.execute(stmt).scalar_one()

    def count_active_locks(
        self,
        session_id: str,
        now: datetime | None = None,
        db_session: Session | None = None,
    ) -> int:
        """Count pending registrations whose seat lock has not lapsed yet."""
        now = now or self._clock()
        stmt = select(func.count(Registration.id)).where(
            Registration.session_id == session_id,
            Registration.status == RegistrationStatus.PENDING.value,
            Registration.seat_lock_until.is_not(None),
            Registration.seat_lock_until >= now,
        )
        with self._db.session_scope(db_session) as s:
            return s.execute(stmt).scalar_one()

    def seats_available(
        self,
        session: EnrollmentSession,
        now: datetime | None = None,
        db_session: Session | None = None,
    ) -> int | None:
        """Seats still free, after committed seats and live locks.

        Returns:
            Number of free seats, or None when the session is unlimited.
        """
        if session.is_unlimited:
            return None
        with self._db.session_scope(db_session) as s:
            committed = self.count_committed(session.id, db_session=s)
            locks = self.count_active_locks(session.id, now=now, db_session=s)
        return max(0, session.total_seats - committed - locks)

    def has_available_seat(
        self,
        session: EnrollmentSession,
        now: datetime | None = None,
        db_session: Session | None = None,
    ) -> bool:
        available = self.seats_available(session, now=now, db_session=db_session)
        return available is None or available > 0

    def resync(self, session_id: str, db_session: Session | None = None) -> int:
        """Recompute and persist ``seats_taken`` for a session.

        Returns:
            The committed seat count that was stored.
        """
        with self._db.session_scope(db_session) as s:
            committed = self.count_committed(session_id, db_session=s)
            self._sessions.set_seats_taken(session_id, committed, db_session=s)
        logger.debug("Resynced session %s: seats_taken=%d", session_id, committed)
        return committed
