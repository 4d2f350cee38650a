from fastapi import APIRouter, Depends, HTTPException

from bucketlab.api.deps import get_experiment_service
from bucketlab.models.schemas import TrackEventRequest, TrackEventResponse
from bucketlab.services.experiments.service import ExperimentService

router = APIRouter()


@router.post("", response_model=TrackEventResponse, status_code=201)
async def track_event(
    request: TrackEventRequest, service: ExperimentService = Depends(get_experiment_service)
):
    event = await service.track_event(request)

    if event is None:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return TrackEventResponse(id=event.id)
