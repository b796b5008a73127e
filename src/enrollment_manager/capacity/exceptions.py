"""Exceptions for the Capacity module."""

from enrollment_manager.exceptions import EnrollmentError


class CapacityError(EnrollmentError):
    """Base exception for capacity errors."""


class CapacityFullError(CapacityError):
    """No seat is left in the session for a new pending registration."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' has no seats available")
        self.session_id = session_id
