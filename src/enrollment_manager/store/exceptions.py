"""Custom exceptions for the Store."""

from enrollment_manager.exceptions import EnrollmentError


class StoreError(EnrollmentError):
    """Base exception for Store errors."""


class SessionNotFoundError(StoreError):
    """Session with given ID does not exist."""


class StudentNotFoundError(StoreError):
    """Student with given ID does not exist."""


class RegistrationNotFoundError(StoreError):
    """Registration with given ID or reference does not exist."""


class PersistenceError(StoreError):
    """The database rejected or failed an operation."""


class ConflictError(PersistenceError):
    """A write violated a uniqueness or foreign key constraint."""
