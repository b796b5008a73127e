"""Authorization collaborator for admin operations.

Token issuance and login belong to an external identity service. The core
only asks one question before any admin read or mutation:
``authorize(action, context) -> bool``.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class AdminAction(StrEnum):
    """Admin operations guarded by the authorizer."""

    LIST_REGISTRATIONS = "registrations.list"
    UPDATE_REGISTRATION = "registrations.update"
    CANCEL_REGISTRATION = "registrations.cancel"
    MERGE_STUDENTS = "students.merge"
    MANAGE_SESSIONS = "sessions.manage"
    VIEW_STATS = "stats.view"


@dataclass
class AuthContext:
    """Credentials and request metadata presented with an admin call."""

    token: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class Authorizer(Protocol):
    """Interface for the identity/auth service."""

    def authorize(self, action: AdminAction, context: AuthContext | None) -> bool:
        """Return True if the caller may perform the action."""
        ...


class TokenAuthorizer:
    """Accepts callers presenting the configured admin token.

    With no token configured every admin action is denied.
    """

    def __init__(self, admin_token: str | None) -> None:
        self._admin_token = admin_token or None
        if self._admin_token is None:
            logger.warning("No admin token configured: admin operations are disabled")

    def authorize(self, action: AdminAction, context: AuthContext | None) -> bool:
        if self._admin_token is None or context is None or not context.token:
            return False
        allowed = hmac.compare_digest(context.token.encode(), self._admin_token.encode())
        if not allowed:
            logger.warning("Rejected admin action %s: invalid token", action.value)
        return allowed


class AllowAllAuthorizer:
    """Authorizer for trusted in-process callers such as CLI commands."""

    def authorize(self, action: AdminAction, context: AuthContext | None) -> bool:
        return True
