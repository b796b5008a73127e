"""Integration tests for the command line."""

import tempfile
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from enrollment_manager import __version__
from enrollment_manager.cli import main
from enrollment_manager.store import (
    Database,
    Registration,
    RegistrationRepository,
    SessionRepository,
    SessionStatus,
    StudentRepository,
    utcnow,
)


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


@pytest.fixture
def config_file(temp_db_path: str, tmp_path: Path) -> Path:
    path = tmp_path / "enrollment.yaml"
    path.write_text(f"db_path: {temp_db_path}\nreaper_enabled: false\n")
    return path


def _seed_expired_lock(db_path: str) -> str:
    db = Database(db_path)
    db.create_tables()
    try:
        now = utcnow()
        session = SessionRepository(db).insert(
            title="TCF Prep", total_seats=1, status=SessionStatus.PUBLISHED
        )
        student_id = StudentRepository(db).upsert(
            {"full_name": "Idle Student", "email": "idle@example.ma", "phone": "0655555555"}
        )
        registrations = RegistrationRepository(db)
        registration = registrations.add(
            Registration(
                session_id=session.id,
                student_id=student_id,
                reference=registrations.new_reference(),
                seat_lock_until=now - timedelta(minutes=5),
            )
        )
        return registration.id
    finally:
        db.close()


@pytest.mark.integration
class TestCli:
    """Tests for the enrollment-manager command."""

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_purge_releases_expired_locks(
        self, temp_db_path: str, config_file: Path, tmp_path: Path
    ) -> None:
        registration_id = _seed_expired_lock(temp_db_path)

        with patch.dict("os.environ", {"ENROLLMENT_LOG_DIR": str(tmp_path / "logs")}, clear=True):
            result = CliRunner().invoke(main, ["purge", "-c", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Released 1 expired seat lock(s)" in result.output

        db = Database(temp_db_path)
        try:
            assert RegistrationRepository(db).get(registration_id).status == "canceled"
        finally:
            db.close()

    def test_purge_with_nothing_to_release(self, config_file: Path, tmp_path: Path) -> None:
        with patch.dict("os.environ", {"ENROLLMENT_LOG_DIR": str(tmp_path / "logs")}, clear=True):
            result = CliRunner().invoke(main, ["purge", "-c", str(config_file)])

        assert result.exit_code == 0
        assert "Released 0 expired seat lock(s)" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("lock_minutes: 0\n")

        result = CliRunner().invoke(main, ["purge", "-c", str(config)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
