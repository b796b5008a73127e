"""Session endpoints: public open list and capacity, admin CRUD."""

from fastapi import APIRouter, Query, status

from enrollment_manager.api.dependencies import AuthDep, ServiceDep, SessionsDep
from enrollment_manager.api.models import (
    APIResponse,
    CapacityResponse,
    SessionCreate,
    SessionResponse,
    SessionUpdate,
    session_to_response,
)
from enrollment_manager.auth import AdminAction
from enrollment_manager.registrations import ValidationError
from enrollment_manager.store import SessionStatus

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/open", response_model=APIResponse[list[SessionResponse]])
def list_open_sessions(service: ServiceDep) -> APIResponse[list[SessionResponse]]:
    """Sessions currently accepting registrations."""
    return APIResponse(data=[session_to_response(s) for s in service.open_sessions()])


@router.get("/{session_id}/capacity", response_model=APIResponse[CapacityResponse])
def get_capacity(
    session_id: str,
    service: ServiceDep,
    email: str | None = Query(default=None),
    phone: str | None = Query(default=None),
) -> APIResponse[CapacityResponse]:
    """Seat usage of a session and whether a contact is already registered."""
    snapshot = service.capacity_snapshot(session_id, email=email, phone=phone)
    return APIResponse(data=CapacityResponse.model_validate(snapshot))


@router.get("", response_model=APIResponse[list[SessionResponse]])
def list_sessions(
    sessions: SessionsDep,
    service: ServiceDep,
    auth: AuthDep,
    status_filter: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None),
    order_by: str = Query(default="start_at"),
    descending: bool = Query(default=False),
) -> APIResponse[list[SessionResponse]]:
    """List all sessions (admin)."""
    service.check_authorized(AdminAction.MANAGE_SESSIONS, auth)
    try:
        session_status = SessionStatus(status_filter) if status_filter else None
    except ValueError as e:
        raise ValidationError(f"Unknown session status '{status_filter}'") from e
    found = sessions.list(
        status=session_status, search=search, order_by=order_by, descending=descending
    )
    return APIResponse(data=[session_to_response(s) for s in found])


@router.post(
    "",
    response_model=APIResponse[SessionResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_session(
    body: SessionCreate, sessions: SessionsDep, service: ServiceDep, auth: AuthDep
) -> APIResponse[SessionResponse]:
    """Create a session (admin)."""
    service.check_authorized(AdminAction.MANAGE_SESSIONS, auth)
    try:
        created = sessions.insert(**body.model_dump())
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return APIResponse(data=session_to_response(created))


@router.get("/{session_id}", response_model=APIResponse[SessionResponse])
def get_session(
    session_id: str, sessions: SessionsDep, service: ServiceDep, auth: AuthDep
) -> APIResponse[SessionResponse]:
    """Get a session by ID (admin)."""
    service.check_authorized(AdminAction.MANAGE_SESSIONS, auth)
    return APIResponse(data=session_to_response(sessions.get(session_id)))


@router.patch("/{session_id}", response_model=APIResponse[SessionResponse])
def update_session(
    session_id: str,
    body: SessionUpdate,
    sessions: SessionsDep,
    service: ServiceDep,
    auth: AuthDep,
) -> APIResponse[SessionResponse]:
    """Update a session (partial update, admin)."""
    service.check_authorized(AdminAction.MANAGE_SESSIONS, auth)
    try:
        updated = sessions.update(session_id, **body.model_dump(exclude_none=True))
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return APIResponse(data=session_to_response(updated))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str, sessions: SessionsDep, service: ServiceDep, auth: AuthDep
) -> None:
    """Delete a session and its registrations (admin)."""
    service.check_authorized(AdminAction.MANAGE_SESSIONS, auth)
    sessions.delete(session_id)
