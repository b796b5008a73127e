"""Registration endpoints: public sign-up and admin management."""

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from enrollment_manager.api.dependencies import AuthDep, ServiceDep
from enrollment_manager.api.models import (
    APIResponse,
    RegistrationCreate,
    RegistrationDetailResponse,
    RegistrationPageResponse,
    RegistrationUpdate,
    detail_to_response,
)
from enrollment_manager.registrations import RegistrationFilters

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=APIResponse[RegistrationDetailResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_registration(
    body: RegistrationCreate, service: ServiceDep
) -> APIResponse[RegistrationDetailResponse]:
    """Register a student and hold a seat while the registration is pending."""
    detail = service.create(body.session_id, body.student_fields())
    return APIResponse(
        data=detail_to_response(detail),
        message=f"Registration {detail.registration.reference} received",
    )


@router.get("", response_model=APIResponse[RegistrationPageResponse])
def list_registrations(
    service: ServiceDep,
    auth: AuthDep,
    session_id: str | None = Query(default=None, description="Filter by session ID"),
    status_filter: str | None = Query(default=None, alias="status", description="Filter by status"),
    search: str | None = Query(default=None, description="Match name, email or phone"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=50),
) -> APIResponse[RegistrationPageResponse]:
    """List registrations, newest first (admin)."""
    result = service.list(
        RegistrationFilters(session_id=session_id, status=status_filter, search=search),
        page=page,
        per_page=per_page,
        context=auth,
    )
    return APIResponse(
        data=RegistrationPageResponse(
            items=[detail_to_response(d) for d in result.items],
            total=result.total,
            page=result.page,
            per_page=result.per_page,
        )
    )


@router.post("/{registration_id}", response_model=APIResponse[None])
def update_registration(
    registration_id: str, body: RegistrationUpdate, service: ServiceDep, auth: AuthDep
) -> APIResponse[None]:
    """Change status and/or payment fields of a registration (admin)."""
    service.update(registration_id, body.model_dump(exclude_none=True), context=auth)
    return APIResponse(message="Registration updated")


@router.post("/{reference}/cancel", response_model=APIResponse[None])
def cancel_registration(reference: str, service: ServiceDep, auth: AuthDep) -> JSONResponse:
    """Cancel a registration by its public reference (admin)."""
    if not service.cancel_by_reference(reference, context=auth):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=APIResponse[None](
                success=False, message="Registration not found"
            ).model_dump(),
        )
    return JSONResponse(content=APIResponse[None](message="Registration canceled").model_dump())
