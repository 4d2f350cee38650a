from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bucketlab.core.database import get_db
from bucketlab.services.experiments.repository import (
    ExperimentRepository,
    SQLAlchemyExperimentRepository,
)
from bucketlab.services.experiments.service import ExperimentService


async def get_repository(db: AsyncSession = Depends(get_db)) -> ExperimentRepository:
    """Repository dependency, overridden in tests with the in-memory one."""
    return SQLAlchemyExperimentRepository(db)


async def get_experiment_service(
    repository: ExperimentRepository = Depends(get_repository),
) -> ExperimentService:
    return ExperimentService(repository)
