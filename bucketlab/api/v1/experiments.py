from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bucketlab.api.deps import get_experiment_service
from bucketlab.models.schemas import (
    CreateExperimentRequest,
    ExperimentListResponse,
    ExperimentResponse,
    ExperimentResultsResponse,
    ExperimentStatusEnum,
    SampleSizeRequest,
    SampleSizeResponse,
    UpdateExperimentRequest,
)
from bucketlab.services.experiments.service import ExperimentService

router = APIRouter()


@router.post("", response_model=ExperimentResponse, status_code=201)
async def create_experiment(
    request: CreateExperimentRequest,
    service: ExperimentService = Depends(get_experiment_service),
):
    experiment = await service.create_experiment(request)
    return service.to_response(experiment)


@router.get("", response_model=ExperimentListResponse)
async def list_experiments(
    status: Optional[ExperimentStatusEnum] = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: ExperimentService = Depends(get_experiment_service),
):
    experiments = await service.list_experiments(status=status, limit=limit, offset=offset)

    return ExperimentListResponse(
        experiments=[service.to_response(e) for e in experiments], total=len(experiments)
    )


@router.post("/sample-size", response_model=SampleSizeResponse)
async def estimate_sample_size(
    request: SampleSizeRequest,
    service: ExperimentService = Depends(get_experiment_service),
):
    return service.estimate_sample_size(request)


@router.get("/{experiment_id}", response_model=ExperimentResponse)
async def get_experiment(
    experiment_id: str, service: ExperimentService = Depends(get_experiment_service)
):
    experiment = await service.get_experiment(experiment_id)

    if not experiment:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return service.to_response(experiment)


@router.patch("/{experiment_id}", response_model=ExperimentResponse)
async def update_experiment(
    experiment_id: str,
    request: UpdateExperimentRequest,
    service: ExperimentService = Depends(get_experiment_service),
):
    experiment = await service.update_experiment(experiment_id, request)

    if not experiment:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return service.to_response(experiment)


@router.delete("/{experiment_id}", status_code=204)
async def delete_experiment(
    experiment_id: str, service: ExperimentService = Depends(get_experiment_service)
):
    deleted = await service.delete_experiment(experiment_id)

    if not deleted:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return None


@router.get("/{experiment_id}/results", response_model=ExperimentResultsResponse)
async def get_experiment_results(
    experiment_id: str,
    confidence_level: Optional[float] = Query(
        None, gt=0, lt=1, description="One of 0.90, 0.95, 0.99"
    ),
    service: ExperimentService = Depends(get_experiment_service),
):
    results = await service.get_results(experiment_id, confidence_level=confidence_level)

    if not results:
        raise HTTPException(status_code=404, detail="Experiment not found")

    return service.results_to_response(results)
