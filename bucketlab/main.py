from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bucketlab.api.v1.router import api_router
from bucketlab.config import get_settings
from bucketlab.core.database import close_db, init_db
from bucketlab.core.exceptions import BucketlabError
from bucketlab.core.logging import configure_logging
from bucketlab.middleware import TelemetryMiddleware
from bucketlab.models.experiment import Assignment, Event, Experiment, Variation  # noqa: F401

settings = get_settings()
configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("startup", app=settings.APP_NAME, environment=settings.ENVIRONMENT)
    await init_db()
    logger.info("database_initialized")
    yield
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="Deterministic experiment assignment and A/B test statistics",
    version="0.1.0",
    docs_url=f"{settings.API_V1_PREFIX}/docs",
    redoc_url=f"{settings.API_V1_PREFIX}/redoc",
    lifespan=lifespan,
)

# CORS middleware
if settings.CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(TelemetryMiddleware)


@app.exception_handler(BucketlabError)
async def bucketlab_error_handler(request: Request, exc: BucketlabError):
    logger.warning("request_rejected", path=request.url.path, **exc.to_dict())
    return JSONResponse(
        status_code=400,
        content={"detail": exc.message, "error": exc.__class__.__name__},
    )


# Include routers
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bucketlab.main:app", host=settings.HOST, port=settings.PORT)
