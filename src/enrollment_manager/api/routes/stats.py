"""Dashboard statistics endpoint."""

from fastapi import APIRouter

from enrollment_manager.api.dependencies import AuthDep, ServiceDep
from enrollment_manager.api.models import APIResponse, StatsResponse

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=APIResponse[StatsResponse])
def get_stats(service: ServiceDep, auth: AuthDep) -> APIResponse[StatsResponse]:
    """Headline numbers for the admin dashboard."""
    return APIResponse(data=StatsResponse.model_validate(service.dashboard_metrics(context=auth)))
