"""External collaborators invoked by the registration workflow.

Notification delivery and receipt rendering live outside this package. The
core only talks to them through the small protocols below; both are best
effort and never roll back a registration.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from enrollment_manager.logging import sanitize_for_log
from enrollment_manager.registrations.exceptions import ReceiptError

if TYPE_CHECKING:
    from enrollment_manager.store import EnrollmentSession, Registration, Student

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    """Kinds of messages sent to a student."""

    RECEIVED = "received"
    CONFIRMED = "confirmed"
    PAID = "paid"


class Notifier(Protocol):
    """Interface for the notification service."""

    def send(
        self,
        kind: NotificationKind,
        student: Student,
        session: EnrollmentSession,
        registration: Registration,
    ) -> None:
        """Deliver a notification. May raise; callers swallow and log."""
        ...


@dataclass
class ReceiptContext:
    """Data handed to the receipt renderer."""

    reference: str
    full_name: str
    email: str | None
    phone: str | None
    session_title: str
    session_start: datetime | None
    amount: Decimal
    currency: str
    created_at: datetime

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe representation."""
        data = asdict(self)
        data["amount"] = str(self.amount)
        data["session_start"] = self.session_start.isoformat() if self.session_start else None
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass
class Receipt:
    """Location of a rendered receipt."""

    url: str
    path: str = ""


class ReceiptService(Protocol):
    """Interface for the receipt/PDF service."""

    def generate(self, context: ReceiptContext) -> Receipt:
        """Render a receipt.

        Raises:
            ReceiptError: If rendering fails.
        """
        ...


def _payload(
    kind: NotificationKind,
    student: Student,
    session: EnrollmentSession,
    registration: Registration,
) -> dict[str, Any]:
    return {
        "kind": kind.value,
        "student": {
            "id": student.id,
            "full_name": student.full_name,
            "email": student.email,
            "phone": student.phone,
        },
        "session": {
            "id": session.id,
            "title": session.title,
            "start_at": session.start_at.isoformat() if session.start_at else None,
            "campus": session.campus,
        },
        "registration": {
            "id": registration.id,
            "reference": registration.reference,
            "status": registration.status,
            "amount": str(registration.amount),
            "currency": registration.currency,
        },
    }


class LoggingNotifier:
    """Notifier that only records what would have been sent."""

    def send(
        self,
        kind: NotificationKind,
        student: Student,
        session: EnrollmentSession,
        registration: Registration,
    ) -> None:
        logger.info(
            "Notification %s for registration %s (%s) in session %s",
            kind.value,
            registration.reference,
            sanitize_for_log(student.email or student.phone or ""),
            session.id,
        )


class WebhookNotifier:
    """Notifier that posts a JSON payload to an external delivery service."""

    def __init__(self, url: str, token: str | None = None, timeout: float = 10.0) -> None:
        """Initialize WebhookNotifier.

        Args:
            url: Endpoint of the notification service.
            token: Bearer token for the service (optional).
            timeout: Request timeout in seconds.
        """
        self.url = url
        self.token = token
        self.timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(headers=headers, timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def send(
        self,
        kind: NotificationKind,
        student: Student,
        session: EnrollmentSession,
        registration: Registration,
    ) -> None:
        response = self.client.post(
            self.url, json=_payload(kind, student, session, registration)
        )
        response.raise_for_status()
        logger.info("Sent %s notification for %s", kind.value, registration.reference)


class NullReceiptService:
    """Receipt service used when no renderer is configured."""

    def generate(self, context: ReceiptContext) -> Receipt:
        return Receipt(url="", path="")


class HttpReceiptService:
    """Receipt service backed by an external rendering endpoint.

    The endpoint receives the receipt context as JSON and answers with
    ``{"url": ..., "path": ...}``.
    """

    def __init__(self, url: str, token: str | None = None, timeout: float = 30.0) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(headers=headers, timeout=self.timeout)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def generate(self, context: ReceiptContext) -> Receipt:
        try:
            response = self.client.post(self.url, json=context.to_payload())
        except httpx.HTTPError as e:
            raise ReceiptError(f"Receipt request failed: {e}") from e

        if response.status_code != 200:
            raise ReceiptError(
                f"Receipt request failed: {response.status_code} - {response.text}"
            )

        data: dict[str, Any] = response.json()
        url = data.get("url") or ""
        if not url:
            raise ReceiptError("Receipt service returned no url")
        return Receipt(url=url, path=data.get("path") or "")
