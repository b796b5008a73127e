"""Unit tests for the notification and receipt clients."""

import json
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from enrollment_manager.registrations import (
    HttpReceiptService,
    LoggingNotifier,
    NotificationKind,
    NullReceiptService,
    ReceiptContext,
    ReceiptError,
    WebhookNotifier,
)
from enrollment_manager.store import EnrollmentSession, Registration, Student


@pytest.fixture
def student() -> Student:
    return Student(
        id="stu-1", full_name="Amina Idrissi", email="amina@example.ma", phone="0612345678"
    )


@pytest.fixture
def enrollment_session() -> EnrollmentSession:
    return EnrollmentSession(
        id="ses-1",
        title="TCF Prep",
        campus="Rabat",
        start_at=datetime(2026, 3, 16, 9, 0),
        total_seats=10,
        price="1500.00",
    )


@pytest.fixture
def registration() -> Registration:
    return Registration(
        id="reg-1",
        session_id="ses-1",
        student_id="stu-1",
        reference="IBC-20260302-AB12",
        amount="1500.00",
    )


@pytest.fixture
def receipt_context() -> ReceiptContext:
    return ReceiptContext(
        reference="IBC-20260302-AB12",
        full_name="Amina Idrissi",
        email="amina@example.ma",
        phone="0612345678",
        session_title="TCF Prep",
        session_start=None,
        amount=Decimal("1500.00"),
        currency="MAD",
        created_at=datetime(2026, 3, 2, 9, 0),
    )


def _mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestWebhookNotifier:
    """Tests for WebhookNotifier."""

    def test_posts_payload(self, student, enrollment_session, registration) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        notifier = WebhookNotifier("https://notify.example.ma/hook")
        notifier._client = _mock_client(handler)

        notifier.send(NotificationKind.RECEIVED, student, enrollment_session, registration)

        assert len(captured) == 1
        body = json.loads(captured[0].content)
        assert body["kind"] == "received"
        assert body["student"]["email"] == "amina@example.ma"
        assert body["session"]["start_at"] == "2026-03-16T09:00:00"
        assert body["registration"]["reference"] == "IBC-20260302-AB12"
        assert body["registration"]["amount"] == "1500.00"

    def test_error_status_raises(self, student, enrollment_session, registration) -> None:
        notifier = WebhookNotifier("https://notify.example.ma/hook")
        notifier._client = _mock_client(lambda request: httpx.Response(500))

        with pytest.raises(httpx.HTTPStatusError):
            notifier.send(NotificationKind.PAID, student, enrollment_session, registration)

    def test_client_sends_bearer_token(self) -> None:
        notifier = WebhookNotifier("https://notify.example.ma/hook", token="svc-token")

        assert notifier.client.headers["Authorization"] == "Bearer svc-token"
        notifier.close()
        assert notifier._client is None

    def test_logging_notifier_does_not_raise(
        self, student, enrollment_session, registration
    ) -> None:
        LoggingNotifier().send(
            NotificationKind.CONFIRMED, student, enrollment_session, registration
        )


@pytest.mark.unit
class TestHttpReceiptService:
    """Tests for HttpReceiptService."""

    def test_returns_receipt(self, receipt_context: ReceiptContext) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["reference"] == "IBC-20260302-AB12"
            assert body["amount"] == "1500.00"
            assert body["session_start"] is None
            return httpx.Response(
                200, json={"url": "https://receipts.example.ma/r.pdf", "path": "/r.pdf"}
            )

        service = HttpReceiptService("https://receipts.example.ma/render")
        service._client = _mock_client(handler)

        receipt = service.generate(receipt_context)

        assert receipt.url == "https://receipts.example.ma/r.pdf"
        assert receipt.path == "/r.pdf"

    def test_non_200_raises(self, receipt_context: ReceiptContext) -> None:
        service = HttpReceiptService("https://receipts.example.ma/render")
        service._client = _mock_client(lambda request: httpx.Response(503, text="busy"))

        with pytest.raises(ReceiptError, match="503"):
            service.generate(receipt_context)

    def test_missing_url_raises(self, receipt_context: ReceiptContext) -> None:
        service = HttpReceiptService("https://receipts.example.ma/render")
        service._client = _mock_client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ReceiptError, match="no url"):
            service.generate(receipt_context)

    def test_transport_error_raises(self, receipt_context: ReceiptContext) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        service = HttpReceiptService("https://receipts.example.ma/render")
        service._client = _mock_client(handler)

        with pytest.raises(ReceiptError, match="refused"):
            service.generate(receipt_context)

    def test_null_service(self, receipt_context: ReceiptContext) -> None:
        assert NullReceiptService().generate(receipt_context).url == ""
