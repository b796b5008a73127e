"""End-to-end enrollment flow through the REST API."""

import tempfile
from datetime import timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from enrollment_manager.api.app import create_app
from enrollment_manager.config import Settings
from enrollment_manager.store import utcnow

ADMIN = {"Authorization": "Bearer flow-token"}


@pytest.fixture
def temp_db_path() -> str:
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        return f.name


@pytest.fixture
def client(temp_db_path: str):
    """Create a test client with temporary database."""
    settings = Settings(db_path=temp_db_path, admin_token="flow-token")
    app = create_app(settings)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    # Cleanup
    Path(temp_db_path).unlink(missing_ok=True)
    Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
    Path(f"{temp_db_path}-shm").unlink(missing_ok=True)


def _student(n: int) -> dict[str, str]:
    return {
        "full_name": f"Flow Student {n}",
        "email": f"flow{n}@example.ma",
        "phone": f"+212 6{n:08d}",
        "cin": f"FL{n:06d}",
        "birthdate": "2001-04-12",
        "city": "Casablanca",
    }


@pytest.mark.integration
class TestEnrollmentFlow:
    """Create a session, fill it, free a seat and refill it."""

    def test_full_flow(self, client: TestClient) -> None:
        now = utcnow()

        # 1. Admin creates and publishes a two-seat session
        created = client.post(
            "/api/v1/sessions",
            json={
                "title": "TCF Canada - April",
                "session_type": "exam",
                "reg_start": (now - timedelta(days=1)).isoformat(),
                "reg_end": (now + timedelta(days=5)).isoformat(),
                "start_at": (now + timedelta(days=20)).isoformat(),
                "total_seats": 2,
                "price": "2200.00",
                "status": "published",
            },
            headers=ADMIN,
        )
        assert created.status_code == 201
        session_id = created.json()["data"]["id"]

        open_ids = [s["id"] for s in client.get("/api/v1/sessions/open").json()["data"]]
        assert session_id in open_ids

        # 2. Two students take both seats
        first = client.post("/api/v1/registrations", json={"sessionId": session_id, **_student(1)})
        second = client.post(
            "/api/v1/registrations", json={"sessionId": session_id, **_student(2)}
        )
        assert first.status_code == 201
        assert second.status_code == 201
        first_reg = first.json()["data"]["registration"]
        assert first_reg["amount"] == "2200.00"
        assert first.json()["data"]["receipt_url"] == ""

        # 3. A third is turned away while both holds are live
        third = client.post("/api/v1/registrations", json={"sessionId": session_id, **_student(3)})
        assert third.status_code == 409

        # 4. The first pays, the second cancels
        paid = client.post(
            f"/api/v1/registrations/{first_reg['id']}",
            json={"status": "paid", "payment_method": "transfer", "payment_ref": "VIR-1"},
            headers=ADMIN,
        )
        assert paid.status_code == 200
        second_ref = second.json()["data"]["registration"]["reference"]
        canceled = client.post(f"/api/v1/registrations/{second_ref}/cancel", headers=ADMIN)
        assert canceled.status_code == 200

        capacity = client.get(f"/api/v1/sessions/{session_id}/capacity").json()["data"]
        assert capacity["committed"] == 1
        assert capacity["active_locks"] == 0
        assert capacity["available"] == 1

        # 5. The freed seat goes to the third student
        retry = client.post("/api/v1/registrations", json={"sessionId": session_id, **_student(3)})
        assert retry.status_code == 201

        # 6. Admin views
        listing = client.get(
            "/api/v1/registrations", params={"session_id": session_id}, headers=ADMIN
        ).json()["data"]
        assert listing["total"] == 3
        statuses = sorted(item["registration"]["status"] for item in listing["items"])
        assert statuses == ["canceled", "paid", "pending"]

        stats = client.get("/api/v1/stats", headers=ADMIN).json()["data"]
        assert stats["total_students"] == 3
        assert stats["by_status"] == {"pending": 1, "confirmed": 0, "paid": 1, "canceled": 1}

    def test_data_persists_across_restarts(self, temp_db_path: str) -> None:
        settings = Settings(db_path=temp_db_path, admin_token="flow-token", reaper_enabled=False)

        with TestClient(create_app(settings)) as client:
            created = client.post(
                "/api/v1/sessions", json={"title": "DELF A2", "total_seats": 8}, headers=ADMIN
            )
            session_id = created.json()["data"]["id"]

        with TestClient(create_app(settings)) as client:
            response = client.get(f"/api/v1/sessions/{session_id}", headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["data"]["title"] == "DELF A2"

        Path(temp_db_path).unlink(missing_ok=True)
        Path(f"{temp_db_path}-wal").unlink(missing_ok=True)
        Path(f"{temp_db_path}-shm").unlink(missing_ok=True)
