from fastapi import APIRouter, Depends, HTTPException

from bucketlab.api.deps import get_experiment_service
from bucketlab.models.schemas import AssignmentRequest, AssignmentResponse
from bucketlab.services.experiments.service import ExperimentService

router = APIRouter()


@router.post("", response_model=AssignmentResponse)
async def assign_user(
    request: AssignmentRequest, service: ExperimentService = Depends(get_experiment_service)
):
    """Get or create the user's sticky assignment for an experiment."""
    assignment = await service.assign(request.experiment_id, request.user_id)

    if assignment is None:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return assignment
