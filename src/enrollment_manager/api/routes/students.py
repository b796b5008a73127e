"""Student endpoints."""

from fastapi import APIRouter

from enrollment_manager.api.dependencies import AuthDep, ServiceDep
from enrollment_manager.api.models import APIResponse, MergeResponse, StudentMerge

router = APIRouter(prefix="/students", tags=["students"])


@router.post("/merge", response_model=APIResponse[MergeResponse])
def merge_students(
    body: StudentMerge, service: ServiceDep, auth: AuthDep
) -> APIResponse[MergeResponse]:
    """Fold duplicate students into a primary record (admin)."""
    merged = service.merge_students(body.primary_id, body.duplicate_ids, context=auth)
    return APIResponse(
        data=MergeResponse(merged=merged),
        message=f"Merged {merged} student(s) into {body.primary_id}",
    )
