"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from collections.abc import Generator  # noqa: TC003
from typing import Annotated

from fastapi import Depends, Header

from enrollment_manager.auth import AuthContext
from enrollment_manager.container import Container
from enrollment_manager.registrations import RegistrationService
from enrollment_manager.store import SessionRepository, StudentRepository

# Global Container instance (initialized on app startup)
_container: Container | None = None


def init_container(container: Container) -> Container:
    """Install the global Container instance."""
    global _container  # noqa: PLW0603
    _container = container
    return _container


def close_container() -> None:
    """Close and forget the global Container instance."""
    global _container  # noqa: PLW0603
    if _container is not None:
        _container.close()
        _container = None


def get_container() -> Container:
    """Return the Container, failing loudly before startup."""
    if _container is None:
        raise RuntimeError("Container not initialized. Call init_container() first.")
    return _container


def get_service() -> Generator[RegistrationService, None, None]:
    """Dependency that provides the RegistrationService."""
    yield get_container().service


def get_sessions() -> Generator[SessionRepository, None, None]:
    """Dependency that provides the SessionRepository."""
    yield get_container().sessions


def get_students() -> Generator[StudentRepository, None, None]:
    """Dependency that provides the StudentRepository."""
    yield get_container().students


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    """Build the AuthContext from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return AuthContext()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return AuthContext()
    return AuthContext(token=token.strip())


# Type aliases for dependency injection
ServiceDep = Annotated[RegistrationService, Depends(get_service)]
SessionsDep = Annotated[SessionRepository, Depends(get_sessions)]
StudentsDep = Annotated[StudentRepository, Depends(get_students)]
AuthDep = Annotated[AuthContext, Depends(get_auth_context)]
