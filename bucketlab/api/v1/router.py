from fastapi import APIRouter

from bucketlab.api.v1 import assignments, events, experiments, health

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(experiments.router, prefix="/experiments", tags=["experiments"])
api_router.include_router(assignments.router, prefix="/assign", tags=["assignment"])
api_router.include_router(events.router, prefix="/track", tags=["events"])
