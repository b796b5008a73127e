"""Configuration loading for Enrollment Manager.

Settings come from an optional YAML file, then ``ENROLLMENT_*`` environment
variables override individual values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from enrollment_manager.exceptions import EnrollmentError

ENV_PREFIX = "ENROLLMENT_"


class ConfigError(EnrollmentError):
    """Raised when configuration is invalid or missing."""


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off", ""}:
        return False
    raise ConfigError(f"Invalid boolean value: {value!r}")


def _parse_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime settings of the enrollment service.

    Attributes:
        db_path: SQLite database file, or ":memory:".
        lock_minutes: How long a pending registration holds its seat.
        reaper_interval_seconds: Seconds between expired-lock sweeps.
        reaper_enabled: Whether the API starts the reaper thread.
        admin_token: Bearer token accepted for admin operations.
        notification_webhook_url: Notification service endpoint (optional).
        receipt_service_url: Receipt renderer endpoint (optional).
        service_token: Bearer token sent to the two external services.
        cors_origins: Origins allowed by the CORS middleware.
    """

    db_path: str = "enrollment.db"
    lock_minutes: int = 10
    reaper_interval_seconds: float = 300.0
    reaper_enabled: bool = True
    admin_token: str | None = None
    notification_webhook_url: str | None = None
    receipt_service_url: str | None = None
    service_token: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    def __post_init__(self) -> None:
        if int(self.lock_minutes) <= 0:
            raise ConfigError("lock_minutes must be positive")
        if float(self.reaper_interval_seconds) <= 0:
            raise ConfigError("reaper_interval_seconds must be positive")
        self.lock_minutes = int(self.lock_minutes)
        self.reaper_interval_seconds = float(self.reaper_interval_seconds)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create settings from a dictionary such as a parsed YAML file.

        Raises:
            ConfigError: If an unknown key is present or a value is invalid.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_env(cls, base: Settings | None = None) -> Settings:
        """Apply ``ENROLLMENT_*`` environment variables on top of ``base``."""
        values: dict[str, Any] = {f.name: getattr(base or cls(), f.name) for f in fields(cls)}
        for f in fields(cls):
            raw = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            try:
                if f.name == "lock_minutes":
                    values[f.name] = int(raw)
                elif f.name == "reaper_interval_seconds":
                    values[f.name] = float(raw)
                elif f.name == "reaper_enabled":
                    values[f.name] = _parse_bool(raw)
                elif f.name == "cors_origins":
                    values[f.name] = _parse_list(raw)
                else:
                    values[f.name] = raw or None
            except ValueError as e:
                raise ConfigError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {e}") from e
        return cls(**values)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from a YAML file (optional) and the environment.

    Args:
        config_path: Path to a YAML mapping of setting names to values.

    Returns:
        The effective settings.

    Raises:
        ConfigError: If the file doesn't exist or is invalid.
    """
    if config_path is None:
        return Settings.from_env()

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a YAML mapping, got {type(data).__name__}")

    return Settings.from_env(Settings.from_dict(data))
