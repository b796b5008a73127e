"""REST API for Enrollment Manager."""

from enrollment_manager.api.app import app, create_app
from enrollment_manager.api.models import (
    APIResponse,
    RegistrationCreate,
    RegistrationDetailResponse,
    SessionResponse,
)

__all__ = [
    "APIResponse",
    "RegistrationCreate",
    "RegistrationDetailResponse",
    "SessionResponse",
    "app",
    "create_app",
]
