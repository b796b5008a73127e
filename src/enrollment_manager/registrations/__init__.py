"""Registrations - the public and admin registration workflow."""

from enrollment_manager.registrations.exceptions import (
    AlreadyRegisteredError,
    InvalidStatusError,
    ReceiptError,
    RegistrationError,
    SessionNotPublishedError,
    UnauthorizedError,
    ValidationError,
)
from enrollment_manager.registrations.models import (
    CapacitySnapshot,
    DashboardMetrics,
    RegistrationDetail,
    RegistrationFilters,
    RegistrationPage,
    StudentFields,
)
from enrollment_manager.registrations.notifications import (
    HttpReceiptService,
    LoggingNotifier,
    NotificationKind,
    Notifier,
    NullReceiptService,
    Receipt,
    ReceiptContext,
    ReceiptService,
    WebhookNotifier,
)
from enrollment_manager.registrations.service import (
    RegistrationService,
    normalize_status,
    validate_student_fields,
)

__all__ = [
    "AlreadyRegisteredError",
    "CapacitySnapshot",
    "DashboardMetrics",
    "HttpReceiptService",
    "InvalidStatusError",
    "LoggingNotifier",
    "NotificationKind",
    "Notifier",
    "NullReceiptService",
    "Receipt",
    "ReceiptContext",
    "ReceiptError",
    "ReceiptService",
    "RegistrationDetail",
    "RegistrationError",
    "RegistrationFilters",
    "RegistrationPage",
    "RegistrationService",
    "SessionNotPublishedError",
    "StudentFields",
    "UnauthorizedError",
    "ValidationError",
    "WebhookNotifier",
    "normalize_status",
    "validate_student_fields",
]
