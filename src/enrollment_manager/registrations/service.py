"""RegistrationService - the registration workflow and its capacity bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from enrollment_manager.auth import AdminAction, AuthContext
from enrollment_manager.registrations.exceptions import (
    AlreadyRegisteredError,
    InvalidStatusError,
    ReceiptError,
    SessionNotPublishedError,
    UnauthorizedError,
    ValidationError,
)
from enrollment_manager.registrations.models import (
    CapacitySnapshot,
    DashboardMetrics,
    RegistrationDetail,
    RegistrationFilters,
    RegistrationPage,
    StudentFields,
)
from enrollment_manager.registrations.notifications import (
    LoggingNotifier,
    NotificationKind,
    NullReceiptService,
    ReceiptContext,
)
from enrollment_manager.store import (
    COMMITTED_STATUSES,
    ConflictError,
    Registration,
    RegistrationStatus,
    SessionStatus,
    normalize_email,
    normalize_phone,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from enrollment_manager.auth import Authorizer
    from enrollment_manager.capacity import CapacityLedger, SeatLockManager
    from enrollment_manager.registrations.notifications import Notifier, ReceiptService
    from enrollment_manager.store import (
        Database,
        EnrollmentSession,
        RegistrationRepository,
        SessionRepository,
        Student,
        StudentRepository,
    )

logger = logging.getLogger(__name__)

REQUIRED_STUDENT_FIELDS = ("full_name", "email", "phone", "cin")
EDITABLE_FIELDS = ("amount", "payment_method", "payment_ref", "notes")
MAX_PER_PAGE = 200

_STATUS_ALIASES = {
    "pending": RegistrationStatus.PENDING,
    "confirmed": RegistrationStatus.CONFIRMED,
    "confirme": RegistrationStatus.CONFIRMED,
    "confirmé": RegistrationStatus.CONFIRMED,
    "paid": RegistrationStatus.PAID,
    "paye": RegistrationStatus.PAID,
    "payé": RegistrationStatus.PAID,
    "canceled": RegistrationStatus.CANCELED,
    "cancelled": RegistrationStatus.CANCELED,
    "annule": RegistrationStatus.CANCELED,
    "annulé": RegistrationStatus.CANCELED,
}

# Admin-driven transitions. canceled -> pending only happens through create().
_TRANSITIONS = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.PENDING,
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.PAID,
        RegistrationStatus.CANCELED,
    },
    RegistrationStatus.CONFIRMED: {
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.PAID,
        RegistrationStatus.CANCELED,
    },
    RegistrationStatus.PAID: {
        RegistrationStatus.PAID,
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.CANCELED,
    },
    RegistrationStatus.CANCELED: {RegistrationStatus.CANCELED},
}

_NOTIFY_ON = {
    RegistrationStatus.CONFIRMED: NotificationKind.CONFIRMED,
    RegistrationStatus.PAID: NotificationKind.PAID,
}


def normalize_status(value: str | RegistrationStatus) -> RegistrationStatus:
    """Map a status value, including French and British spellings, to the enum.

    Raises:
        InvalidStatusError: If the value is not a known status.
    """
    if isinstance(value, RegistrationStatus):
        return value
    status = _STATUS_ALIASES.get(str(value or "").strip().lower())
    if status is None:
        raise InvalidStatusError(f"Unknown registration status '{value}'")
    return status


def _parse_birthdate(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError(f"Invalid birthdate '{value}'", missing=[]) from e


def validate_student_fields(raw: Mapping[str, Any]) -> StudentFields:
    """Check and normalize the student part of a registration request.

    Raises:
        ValidationError: Listing every missing required field, or naming a
            malformed one.
    """
    missing = [name for name in REQUIRED_STUDENT_FIELDS if not str(raw.get(name) or "").strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing=missing)

    email = normalize_email(raw["email"])
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise ValidationError(f"Invalid email address '{raw['email']}'")

    phone = normalize_phone(raw["phone"])
    if sum(ch.isdigit() for ch in phone) < 8:
        raise ValidationError(f"Invalid phone number '{raw['phone']}'")

    return StudentFields(
        full_name=" ".join(str(raw["full_name"]).split()),
        email=email,
        phone=phone,
        cin=str(raw["cin"]).strip().upper(),
        birthdate=_parse_birthdate(raw.get("birthdate")),
        city=str(raw.get("city") or "").strip(),
        notes=(str(raw["notes"]).strip() or None) if raw.get("notes") else None,
    )


def _clean_extra_fields(extra: Mapping[str, Any] | None) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for name, value in (extra or {}).items():
        if name not in EDITABLE_FIELDS or value is None:
            continue
        if name == "amount":
            try:
                value = Decimal(str(value))
            except InvalidOperation as e:
                raise ValidationError(f"Invalid amount '{value}'") from e
            if value < 0:
                raise ValidationError("Amount must not be negative")
        else:
            value = str(value).strip()
        cleaned[name] = value
    return cleaned


class RegistrationService:
    """Creates, lists and mutates registrations.

    This is the only entry point that combines student identity, session
    capacity and registration state. Every mutation resyncs the session's
    cached seat count in the same transaction that changed the row.
    """

    def __init__(
        self,
        db: Database,
        sessions: SessionRepository,
        students: StudentRepository,
        registrations: RegistrationRepository,
        ledger: CapacityLedger,
        seat_locks: SeatLockManager,
        authorizer: Authorizer,
        notifier: Notifier | None = None,
        receipts: ReceiptService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the RegistrationService.

        Args:
            db: Database for multi-step transactions.
            sessions: Session repository.
            students: Student repository.
            registrations: Registration repository.
            ledger: CapacityLedger for counts and resyncs.
            seat_locks: SeatLockManager for seat holds and per-session guards.
            authorizer: Decides admin operations.
            notifier: Notification service (defaults to logging only).
            receipts: Receipt service (defaults to none).
            clock: Source of the current UTC time.
        """
        self._db = db
        self.sessions = sessions
        self.students = students
        self.registrations = registrations
        self.ledger = ledger
        self.seat_locks = seat_locks
        self.authorizer = authorizer
        self.notifier = notifier or LoggingNotifier()
        self.receipts = receipts or NullReceiptService()
        self._clock = clock

    # --- Public workflow ---

    def create(self, session_id: str, student_fields: Mapping[str, Any]) -> RegistrationDetail:
        """Register a student for a session with a temporary seat lock.

        Args:
            session_id: The session's unique ID.
            student_fields: full_name, email, phone, cin and optional
                birthdate, city, notes.

        Returns:
            RegistrationDetail for the pending registration.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
            SessionNotPublishedError: If the session isn't accepting registrations.
            ValidationError: If student fields are missing or malformed.
            AlreadyRegisteredError: If the student already holds a seat or a live hold.
            CapacityFullError: If no seat is left.
        """
        now = self._clock()
        session = self.sessions.get(session_id)
        self._ensure_accepting(session, now)
        fields = validate_student_fields(student_fields)
        student_id = self.students.upsert(fields.as_dict())

        with self.seat_locks.session_guard(session_id):
            try:
                registration = self._reserve(session_id, student_id, now)
            except ConflictError:
                # Another process wrote the same session/student pair or reference first
                logger.warning("Registration conflict on session %s, retrying once", session_id)
                registration = self._reserve(session_id, student_id, now)

        student = self.students.get(student_id)
        session = self.sessions.get(session_id)
        logger.info(
            "Registration %s pending for session %s until %s",
            registration.reference,
            session_id,
            registration.seat_lock_until,
        )

        self._notify(NotificationKind.RECEIVED, student, session, registration)
        receipt_url = self._render_receipt(student, session, registration)
        return RegistrationDetail(
            registration=registration,
            student=student,
            session=session,
            receipt_url=receipt_url,
        )

    def open_sessions(self) -> list[EnrollmentSession]:
        """Published sessions inside their registration window with committed seats left."""
        return self.sessions.list_open(now=self._clock())

    def capacity_snapshot(
        self,
        session_id: str,
        email: str | None = None,
        phone: str | None = None,
    ) -> CapacitySnapshot:
        """Report seat usage and whether a contact is already registered.

        Raises:
            SessionNotFoundError: If the session doesn't exist.
        """
        now = self._clock()
        with self._db.session_scope() as s:
            session = self.sessions.get(session_id, db_session=s)
            committed = self.ledger.count_committed(session_id, db_session=s)
            locks = self.ledger.count_active_locks(session_id, now=now, db_session=s)
            available = self.ledger.seats_available(session, now=now, db_session=s)

        return CapacitySnapshot(
            session_id=session_id,
            total_seats=session.total_seats,
            committed=committed,
            active_locks=locks,
            available=available,
            exists_email=self.registrations.has_active_contact(session_id, email=email),
            exists_phone=self.registrations.has_active_contact(session_id, phone=phone),
        )

    # --- Admin operations ---

    def update_status(
        self,
        registration_id: str,
        new_status: str | RegistrationStatus | None,
        extra_fields: Mapping[str, Any] | None = None,
        context: AuthContext | None = None,
    ) -> bool:
        """Change a registration's status and/or payment fields.

        Args:
            registration_id: The registration's unique ID.
            new_status: Target status, or None to keep the current one.
            extra_fields: amount, payment_method, payment_ref, notes.
            context: Credentials for the authorizer.

        Returns:
            True once the change is persisted.

        Raises:
            UnauthorizedError: If the authorizer denies the update.
            InvalidStatusError: If the status is unknown or the transition forbidden.
            ValidationError: If an extra field is malformed.
            RegistrationNotFoundError: If the registration doesn't exist.
            CapacityFullError: If confirming a lapsed hold when no seat is left.
        """
        self.check_authorized(AdminAction.UPDATE_REGISTRATION, context)
        target = normalize_status(new_status) if new_status is not None else None
        extra = _clean_extra_fields(extra_fields)
        now = self._clock()

        session_id = self.registrations.get(registration_id).session_id
        with self.seat_locks.session_guard(session_id):
            with self._db.session_scope() as s:
                registration = self.registrations.get(registration_id, db_session=s)
                previous = registration.registration_status
                target = target or previous
                self._check_transition(registration, previous, target, now, s)

                registration.registration_status = target
                for name, value in extra.items():
                    setattr(registration, name, value)
                registration.updated_at = now
                s.flush()
                self.ledger.resync(session_id, db_session=s)

        logger.info(
            "Registration %s: %s -> %s", registration.reference, previous.value, target.value
        )

        kind = _NOTIFY_ON.get(target)
        if kind is not None and target is not previous:
            self._notify(
                kind,
                self.students.get(registration.student_id),
                self.sessions.get(session_id),
                registration,
            )
        return True

    def update(
        self,
        registration_id: str,
        fields: Mapping[str, Any],
        context: AuthContext | None = None,
    ) -> bool:
        """Admin edit of a registration; ``status`` in fields is optional.

        Raises:
            ValidationError: If no editable field is provided.
        """
        extra = {k: v for k, v in fields.items() if k != "status"}
        status = fields.get("status") or None
        if status is None and not _clean_extra_fields(extra):
            raise ValidationError("No fields to update")
        return self.update_status(registration_id, status, extra, context=context)

    def cancel_by_reference(self, reference: str, context: AuthContext | None = None) -> bool:
        """Soft-cancel a registration by its public reference.

        Returns:
            False when no registration carries the reference.

        Raises:
            UnauthorizedError: If the authorizer denies the cancellation.
        """
        self.check_authorized(AdminAction.CANCEL_REGISTRATION, context)
        found = self.registrations.find_by_reference(reference)
        if found is None:
            logger.info("Cancel requested for unknown reference %s", reference)
            return False

        now = self._clock()
        with self.seat_locks.session_guard(found.session_id):
            with self._db.session_scope() as s:
                registration = self.registrations.get(found.id, db_session=s)
                registration.registration_status = RegistrationStatus.CANCELED
                registration.updated_at = now
                s.flush()
                self.ledger.resync(found.session_id, db_session=s)

        logger.info("Registration %s canceled", found.reference)
        return True

    def list(
        self,
        filters: RegistrationFilters | None = None,
        page: int = 1,
        per_page: int = 50,
        context: AuthContext | None = None,
    ) -> RegistrationPage:
        """List registrations joined with student and session, newest first.

        Raises:
            UnauthorizedError: If the authorizer denies the listing.
            InvalidStatusError: If the status filter is unknown.
        """
        self.check_authorized(AdminAction.LIST_REGISTRATIONS, context)
        filters = filters or RegistrationFilters()
        per_page = max(1, min(MAX_PER_PAGE, per_page or 50))
        page = max(1, page or 1)
        status = normalize_status(filters.status) if filters.status else None

        rows, total = self.registrations.list_detailed(
            session_id=filters.session_id or None,
            status=status,
            search=filters.search or None,
            limit=per_page,
            offset=(page - 1) * per_page,
        )
        items = [
            RegistrationDetail(registration=r, student=student, session=session)
            for r, student, session in rows
        ]
        return RegistrationPage(items=items, total=total, page=page, per_page=per_page)

    def merge_students(
        self,
        primary_id: str,
        duplicate_ids: list[str],
        context: AuthContext | None = None,
    ) -> int:
        """Merge duplicate students and resync every session the primary now holds.

        Returns:
            Number of duplicate students removed.
        """
        self.check_authorized(AdminAction.MERGE_STUDENTS, context)
        merged = self.students.merge(primary_id, duplicate_ids)
        for session_id in self.registrations.session_ids_for_student(primary_id):
            self.ledger.resync(session_id)
        return merged

    def registration_counts(self, context: AuthContext | None = None) -> dict[str, int]:
        """Registrations per status, with every status present."""
        self.check_authorized(AdminAction.VIEW_STATS, context)
        counts = self.registrations.count_by_status()
        return {status.value: counts.get(status.value, 0) for status in RegistrationStatus}

    def dashboard_metrics(self, context: AuthContext | None = None) -> DashboardMetrics:
        """Headline numbers for the admin dashboard."""
        self.check_authorized(AdminAction.VIEW_STATS, context)
        now = self._clock()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)

        published = self.sessions.list(status=SessionStatus.PUBLISHED)
        upcoming = [s for s in published if s.start_at is None or s.start_at >= now]
        seats_left = sum(
            max(s.total_seats - s.seats_taken, 0) for s in published if not s.is_unlimited
        )

        return DashboardMetrics(
            today_registrations=self.registrations.count_created_between(day_start, day_end),
            total_students=self.students.count(),
            upcoming_sessions=len(upcoming),
            seats_left=seats_left,
            by_status=self.registration_counts(context),
        )

    def check_authorized(self, action: AdminAction, context: AuthContext | None) -> None:
        """Ask the authorizer about an admin action.

        Raises:
            UnauthorizedError: If the action is denied.
        """
        if not self.authorizer.authorize(action, context):
            raise UnauthorizedError(f"Not authorized to perform '{action.value}'")

    # --- Internals ---

    def _ensure_accepting(self, session: EnrollmentSession, now: datetime) -> None:
        if session.status != SessionStatus.PUBLISHED.value:
            raise SessionNotPublishedError(f"Session '{session.id}' is not published")
        if not session.registration_open_at(now):
            raise SessionNotPublishedError(
                f"Registration for session '{session.id}' is closed at this time"
            )

    def _reserve(self, session_id: str, student_id: str, now: datetime) -> Registration:
        """Check, lock and write the registration in one transaction."""
        with self._db.session_scope() as s:
            session = self.sessions.get(session_id, db_session=s)
            self._ensure_accepting(session, now)

            existing = self.registrations.find_by_session_student(
                session_id, student_id, db_session=s
            )
            if existing is not None:
                if existing.is_committed:
                    raise AlreadyRegisteredError(
                        f"Student already registered for session '{session_id}'"
                    )
                if existing.lock_active_at(now):
                    raise AlreadyRegisteredError(
                        f"Student already holds a pending seat in session '{session_id}'"
                    )

            expiry = self.seat_locks.acquire_lock(session, now=now, db_session=s)

            if existing is None:
                registration = Registration(
                    session_id=session_id,
                    student_id=student_id,
                    reference=self.registrations.new_reference(db_session=s),
                    status=RegistrationStatus.PENDING.value,
                    amount=session.price,
                    currency=session.currency,
                    seat_lock_until=expiry,
                    created_at=now,
                    updated_at=now,
                )
                self.registrations.add(registration, db_session=s)
            else:
                registration = existing
                registration.registration_status = RegistrationStatus.PENDING
                registration.seat_lock_until = expiry
                registration.amount = session.price
                registration.currency = session.currency
                registration.updated_at = now
                s.flush()

            self.ledger.resync(session_id, db_session=s)
            return registration

    def _check_transition(
        self,
        registration: Registration,
        previous: RegistrationStatus,
        target: RegistrationStatus,
        now: datetime,
        db_session: Session,
    ) -> None:
        if target not in _TRANSITIONS[previous]:
            raise InvalidStatusError(
                f"Cannot move registration from '{previous.value}' to '{target.value}'"
            )
        # A lapsed hold no longer reserves a seat; committing it must find one
        if (
            previous is RegistrationStatus.PENDING
            and target in COMMITTED_STATUSES
            and not registration.lock_active_at(now)
        ):
            session = self.sessions.get(registration.session_id, db_session=db_session)
            self.seat_locks.acquire_lock(session, now=now, db_session=db_session)

    def _notify(
        self,
        kind: NotificationKind,
        student: Student,
        session: EnrollmentSession,
        registration: Registration,
    ) -> None:
        try:
            self.notifier.send(kind, student, session, registration)
        except Exception:
            logger.exception(
                "Failed to send %s notification for registration %s",
                kind.value,
                registration.reference,
            )

    def _render_receipt(
        self,
        student: Student,
        session: EnrollmentSession,
        registration: Registration,
    ) -> str:
        context = ReceiptContext(
            reference=registration.reference,
            full_name=student.full_name,
            email=student.email,
            phone=student.phone,
            session_title=session.title,
            session_start=session.start_at,
            amount=registration.amount,
            currency=registration.currency,
            created_at=registration.created_at,
        )
        try:
            return self.receipts.generate(context).url
        except ReceiptError as e:
            logger.warning("Receipt for %s unavailable: %s", registration.reference, e)
        except Exception:
            logger.exception("Receipt generation crashed for %s", registration.reference)
        return ""
