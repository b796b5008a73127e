"""SeatLockManager - temporary seat holds for pending registrations."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from enrollment_manager.capacity.exceptions import CapacityFullError
from enrollment_manager.store.models import RegistrationStatus, utcnow

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.orm import Session

    from enrollment_manager.capacity.ledger import CapacityLedger
    from enrollment_manager.store import EnrollmentSession, Registration, RegistrationRepository

logger = logging.getLogger(__name__)

LOCK_DURATION = timedelta(minutes=10)


class SeatLockManager:
    """Issues and expires seat locks.

    A lock is data, not a live handle: it is the ``seat_lock_until`` value of
    a pending registration. Every availability check re-validates expiry, so a
    lapsed lock stops counting even before the reaper cancels its row.

    Check-then-insert for one session is serialized by :meth:`session_guard`
    within this process and by ``BEGIN IMMEDIATE`` transactions across
    processes. Sessions never wait on each other.
    """

    def __init__(
        self,
        ledger: CapacityLedger,
        registrations: RegistrationRepository,
        lock_duration: timedelta = LOCK_DURATION,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the SeatLockManager.

        Args:
            ledger: CapacityLedger for seat counts and resyncs.
            registrations: Repository for expired-lock queries.
            lock_duration: How long a pending registration holds its seat.
            clock: Source of the current UTC time.
        """
        self.ledger = ledger
        self.registrations = registrations
        self.lock_duration = lock_duration
        self._clock = clock
        self._guards: dict[str, threading.Lock] = {}
        self._guards_lock = threading.Lock()

    @contextmanager
    def session_guard(self, session_id: str) -> Iterator[None]:
        """Serialize capacity-sensitive work on one session."""
        with self._guards_lock:
            guard = self._guards.setdefault(session_id, threading.Lock())
        with guard:
            yield

    def lock_expiration(self, now: datetime | None = None) -> datetime:
        """Expiry timestamp for a lock taken at ``now``."""
        return (now or self._clock()) + self.lock_duration

    def acquire_lock(
        self,
        session: EnrollmentSession,
        now: datetime | None = None,
        db_session: Session | None = None,
    ) -> datetime:
        """Reserve a seat for a new pending registration.

        Callers run this inside :meth:`session_guard` and in the same
        transaction that writes the registration.

        Args:
            session: The session to take a seat in.
            now: Reference time (defaults to the clock).
            db_session: Transaction to count seats in (optional).

        Returns:
            The lock expiry to store on the registration.

        Raises:
            CapacityFullError: If no seat is free after committed seats and live locks.
        """
        now = now or self._clock()
        if not self.ledger.has_available_seat(session, now=now, db_session=db_session):
            logger.info("Seat lock denied for session %s: capacity full", session.id)
            raise CapacityFullError(session.id)
        return self.lock_expiration(now)

    @staticmethod
    def is_expired(registration: Registration, now: datetime) -> bool:
        """True iff the registration is pending and its lock lapsed before ``now``."""
        return (
            registration.status == RegistrationStatus.PENDING.value
            and registration.seat_lock_until is not None
            and registration.seat_lock_until < now
        )

    def purge_expired(self, now: datetime | None = None) -> int:
        """Cancel every pending registration whose lock has lapsed.

        Each candidate is canceled by its own conditional update, so a
        registration confirmed meanwhile is skipped and a second call right
        after the first finds nothing to do. A failure on one candidate is
        logged and the sweep moves on.

        Args:
            now: Reference time (defaults to the clock).

        Returns:
            Number of registrations canceled by this call.
        """
        now = now or self._clock()
        candidates = self.registrations.expired_candidates(now)
        if not candidates:
            return 0

        canceled = 0
        affected: set[str] = set()
        for registration_id, session_id in candidates:
            try:
                if self.registrations.cancel_if_expired(registration_id, now):
                    canceled += 1
                    affected.add(session_id)
            except Exception:
                logger.exception("Failed to cancel expired registration %s", registration_id)

        for session_id in sorted(affected):
            try:
                self.ledger.resync(session_id)
            except Exception:
                logger.exception("Failed to resync session %s after purge", session_id)

        logger.info(
            "Purged %d expired seat lock(s) across %d session(s)", canceled, len(affected)
        )
        return canceled
