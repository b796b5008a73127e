"""FastAPI application setup."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from enrollment_manager import __version__
from enrollment_manager.api.dependencies import close_container, init_container
from enrollment_manager.api.models import APIResponse
from enrollment_manager.api.routes import registrations, sessions, stats, students
from enrollment_manager.capacity import CapacityFullError
from enrollment_manager.config import Settings
from enrollment_manager.container import build_container
from enrollment_manager.registrations import (
    AlreadyRegisteredError,
    InvalidStatusError,
    SessionNotPublishedError,
    UnauthorizedError,
    ValidationError,
)
from enrollment_manager.store import (
    PersistenceError,
    RegistrationNotFoundError,
    SessionNotFoundError,
    StudentNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from enrollment_manager.container import Container

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, data: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            APIResponse[object](success=False, data=data, message=message).model_dump()
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    container: Container | None = getattr(app.state, "container", None)
    if container is None:
        settings = app.state.settings or Settings.from_env()
        container = build_container(settings)
    init_container(container)

    if container.settings.reaper_enabled:
        container.reaper.start()

    yield
    # Shutdown
    close_container()


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Runtime settings. Read from the environment at startup when omitted.
        container: Prebuilt components to serve instead of building them from settings.
    """
    app = FastAPI(
        title="Enrollment Manager API",
        description="REST API for session enrollment with seat reservation",
        version=__version__,
        lifespan=lifespan,
    )

    # Store config for lifespan manager
    app.state.settings = settings if container is None else container.settings
    app.state.container = container

    origins = app.state.settings.cors_origins if app.state.settings is not None else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _error(422, "Invalid request", exc.errors())

    @app.exception_handler(ValidationError)
    async def validation_handler(_request: Request, exc: ValidationError) -> JSONResponse:
        data = {"missing": exc.missing} if exc.missing else None
        return _error(status.HTTP_400_BAD_REQUEST, str(exc), data)

    @app.exception_handler(InvalidStatusError)
    async def invalid_status_handler(_request: Request, exc: InvalidStatusError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(UnauthorizedError)
    async def unauthorized_handler(_request: Request, _exc: UnauthorizedError) -> JSONResponse:
        return _error(status.HTTP_401_UNAUTHORIZED, "Unauthorized")

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found_handler(
        _request: Request, _exc: SessionNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Session not found")

    @app.exception_handler(RegistrationNotFoundError)
    async def registration_not_found_handler(
        _request: Request, _exc: RegistrationNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Registration not found")

    @app.exception_handler(StudentNotFoundError)
    async def student_not_found_handler(
        _request: Request, _exc: StudentNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Student not found")

    @app.exception_handler(SessionNotPublishedError)
    async def not_published_handler(
        _request: Request, exc: SessionNotPublishedError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(CapacityFullError)
    async def capacity_full_handler(_request: Request, _exc: CapacityFullError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "Session is full")

    @app.exception_handler(AlreadyRegisteredError)
    async def already_registered_handler(
        _request: Request, _exc: AlreadyRegisteredError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "Already registered for this session")

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(
        _request: Request, exc: PersistenceError
    ) -> JSONResponse:
        logger.error("Persistence failure: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    # Include routers
    app.include_router(registrations.router, prefix="/api/v1")
    app.include_router(sessions.router, prefix="/api/v1")
    app.include_router(students.router, prefix="/api/v1")
    app.include_router(stats.router, prefix="/api/v1")

    return app


# Default app instance, configured from the environment at startup
app = create_app()
