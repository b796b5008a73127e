"""Concurrent registrations never oversell a session."""

import tempfile
import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from enrollment_manager.auth import AllowAllAuthorizer
from enrollment_manager.capacity import CapacityFullError
from enrollment_manager.config import Settings
from enrollment_manager.container import Container, build_container
from enrollment_manager.store import SessionStatus, utcnow

SEATS = 3
ATTEMPTS = 10


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    # Cleanup
    Path(path).unlink(missing_ok=True)
    Path(f"{path}-wal").unlink(missing_ok=True)
    Path(f"{path}-shm").unlink(missing_ok=True)


def _container(db_path: str) -> Container:
    return build_container(
        Settings(db_path=db_path, reaper_enabled=False),
        notifier=MagicMock(),
        authorizer=AllowAllAuthorizer(),
    )


def _insert_session(container: Container) -> str:
    now = utcnow()
    return container.sessions.insert(
        title="TCF Prep - Concurrency",
        reg_start=now - timedelta(days=1),
        reg_end=now + timedelta(days=1),
        start_at=now + timedelta(days=10),
        total_seats=SEATS,
        price="1500.00",
        status=SessionStatus.PUBLISHED,
    ).id


def _run_attempts(
    containers: list[Container], session_id: str
) -> tuple[list[str], list[Exception]]:
    successes: list[str] = []
    failures: list[Exception] = []
    results_lock = threading.Lock()
    start = threading.Barrier(ATTEMPTS)

    def attempt(n: int) -> None:
        service = containers[n % len(containers)].service
        fields = {
            "full_name": f"Racer {n}",
            "email": f"racer{n}@example.ma",
            "phone": f"07{n:08d}",
            "cin": f"RC{n:06d}",
        }
        start.wait()
        try:
            detail = service.create(session_id, fields)
        except Exception as e:
            with results_lock:
                failures.append(e)
        else:
            with results_lock:
                successes.append(detail.registration.id)

    threads = [threading.Thread(target=attempt, args=(n,)) for n in range(ATTEMPTS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return successes, failures


@pytest.mark.integration
class TestConcurrentRegistrations:
    """Only as many registrations as seats succeed under contention."""

    def test_threads_in_one_process(self, temp_db_path: str) -> None:
        container = _container(temp_db_path)
        try:
            session_id = _insert_session(container)

            successes, failures = _run_attempts([container], session_id)

            assert len(successes) == SEATS
            assert len(failures) == ATTEMPTS - SEATS
            assert all(isinstance(e, CapacityFullError) for e in failures)
            assert container.ledger.count_active_locks(session_id) == SEATS
        finally:
            container.close()

    def test_independent_services_on_one_file(self, temp_db_path: str) -> None:
        first = _container(temp_db_path)
        second = _container(temp_db_path)
        try:
            session_id = _insert_session(first)

            successes, failures = _run_attempts([first, second], session_id)

            assert len(successes) == SEATS
            assert all(isinstance(e, CapacityFullError) for e in failures)
            assert second.ledger.count_active_locks(session_id) == SEATS
        finally:
            first.close()
            second.close()

    def test_confirmed_seats_fill_the_session(self, temp_db_path: str) -> None:
        container = _container(temp_db_path)
        try:
            session_id = _insert_session(container)
            successes, _ = _run_attempts([container], session_id)

            for registration_id in successes:
                container.service.update_status(registration_id, "confirmed")

            session = container.sessions.get(session_id)
            assert session.seats_taken == SEATS
            assert container.ledger.count_active_locks(session_id) == 0
            with pytest.raises(CapacityFullError):
                container.service.create(
                    session_id,
                    {
                        "full_name": "Late Comer",
                        "email": "late@example.ma",
                        "phone": "0799999999",
                        "cin": "LC000001",
                    },
                )
        finally:
            container.close()
