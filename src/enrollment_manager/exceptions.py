"""Root exception for Enrollment Manager."""


class EnrollmentError(Exception):
    """Base exception for all domain errors raised by Enrollment Manager."""
