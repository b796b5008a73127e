"""Wiring of the store, capacity and registration components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from enrollment_manager.auth import TokenAuthorizer
from enrollment_manager.capacity import CapacityLedger, SeatLockManager
from enrollment_manager.reaper import Reaper
from enrollment_manager.registrations import (
    HttpReceiptService,
    LoggingNotifier,
    NullReceiptService,
    RegistrationService,
    WebhookNotifier,
)
from enrollment_manager.store import (
    Database,
    RegistrationRepository,
    SessionRepository,
    StudentRepository,
    utcnow,
)

if TYPE_CHECKING:
    from enrollment_manager.auth import Authorizer
    from enrollment_manager.config import Settings
    from enrollment_manager.registrations import Notifier, ReceiptService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """All long-lived components of one running service."""

    settings: Settings
    db: Database
    sessions: SessionRepository
    students: StudentRepository
    registrations: RegistrationRepository
    ledger: CapacityLedger
    seat_locks: SeatLockManager
    service: RegistrationService
    reaper: Reaper

    def close(self) -> None:
        """Stop the reaper and release external clients and the database."""
        self.reaper.stop()
        for collaborator in (self.service.notifier, self.service.receipts):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()
        self.db.close()


def build_container(
    settings: Settings,
    notifier: Notifier | None = None,
    receipts: ReceiptService | None = None,
    authorizer: Authorizer | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Container:
    """Create every component from settings.

    Args:
        settings: Effective runtime settings.
        notifier: Notifier override (defaults from settings).
        receipts: Receipt service override (defaults from settings).
        authorizer: Authorizer override (defaults to the admin token check).
        clock: Source of the current UTC time.

    Returns:
        The wired Container, with tables created.
    """
    db = Database(settings.db_path)
    db.create_tables()

    sessions = SessionRepository(db)
    students = StudentRepository(db)
    registrations = RegistrationRepository(db)
    ledger = CapacityLedger(db, sessions, clock=clock)
    seat_locks = SeatLockManager(
        ledger,
        registrations,
        lock_duration=timedelta(minutes=settings.lock_minutes),
        clock=clock,
    )

    if notifier is None:
        notifier = (
            WebhookNotifier(settings.notification_webhook_url, token=settings.service_token)
            if settings.notification_webhook_url
            else LoggingNotifier()
        )
    if receipts is None:
        receipts = (
            HttpReceiptService(settings.receipt_service_url, token=settings.service_token)
            if settings.receipt_service_url
            else NullReceiptService()
        )

    service = RegistrationService(
        db=db,
        sessions=sessions,
        students=students,
        registrations=registrations,
        ledger=ledger,
        seat_locks=seat_locks,
        authorizer=authorizer or TokenAuthorizer(settings.admin_token),
        notifier=notifier,
        receipts=receipts,
        clock=clock,
    )
    reaper = Reaper(seat_locks, interval=settings.reaper_interval_seconds)

    logger.info(
        "Enrollment container ready (db=%s, lock=%dmin)", settings.db_path, settings.lock_minutes
    )
    return Container(
        settings=settings,
        db=db,
        sessions=sessions,
        students=students,
        registrations=registrations,
        ledger=ledger,
        seat_locks=seat_locks,
        service=service,
        reaper=reaper,
    )
