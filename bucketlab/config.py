import json
from functools import lru_cache
from typing import List, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Service
    APP_NAME: str = "bucketlab"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # Console renderer when false

    API_V1_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./bucketlab.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    CORS_ORIGINS: Union[List[str], str] = []

    # Results
    DEFAULT_CONFIDENCE_LEVEL: float = 0.95
    MIN_SAMPLE_SIZE: int = 100  # Per variation, below this a test is never significant

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_cors_origins(cls, v):
        if not isinstance(v, str):
            return v
        if v.lstrip().startswith("["):
            return json.loads(v)
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    @field_validator("DEFAULT_CONFIDENCE_LEVEL")
    @classmethod
    def check_confidence_level(cls, v: float) -> float:
        # Imported here, the experiments package imports this module
        from bucketlab.services.experiments.stats import Z_CRITICAL_VALUES

        supported = tuple(Z_CRITICAL_VALUES)
        if v not in supported:
            raise ValueError(f"DEFAULT_CONFIDENCE_LEVEL must be one of {supported}")
        return v

    @field_validator("MIN_SAMPLE_SIZE")
    @classmethod
    def check_min_sample_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MIN_SAMPLE_SIZE must be positive")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
