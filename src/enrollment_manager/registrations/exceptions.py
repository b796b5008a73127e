"""Exceptions for the Registrations module."""

from enrollment_manager.exceptions import EnrollmentError


class RegistrationError(EnrollmentError):
    """Base exception for registration workflow errors."""


class ValidationError(RegistrationError):
    """Student fields are missing or malformed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class SessionNotPublishedError(RegistrationError):
    """Session is not published or its registration window is closed."""


class AlreadyRegisteredError(RegistrationError):
    """Student already holds an active registration for the session."""


class InvalidStatusError(RegistrationError):
    """Unknown status value or forbidden status transition."""


class UnauthorizedError(RegistrationError):
    """The authorizer rejected an admin operation."""


class ReceiptError(RegistrationError):
    """The receipt service could not produce a receipt."""
