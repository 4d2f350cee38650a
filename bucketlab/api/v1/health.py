from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from bucketlab.config import get_settings
from bucketlab.core.database import get_db

router = APIRouter()


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {"status": "healthy", "service": settings.APP_NAME, "environment": settings.ENVIRONMENT}


@router.get("/health/db")
async def health_check_db(db: AsyncSession = Depends(get_db)):
    """Round-trips a trivial query through the configured database."""
    backend = db.bind.dialect.name
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return {"status": "unhealthy", "database": backend, "error": str(e)}
    return {"status": "healthy", "database": backend}
