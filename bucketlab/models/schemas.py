from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ExperimentStatusEnum(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class EventTypeEnum(str, Enum):
    EXPOSURE = "exposure"
    CONVERSION = "conversion"


# ============ Experiments ============


class VariationRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    url: Optional[str] = Field(None, description="Redirect target for this variation")
    weight: float = Field(..., ge=0, description="Relative traffic weight")
    is_control: bool = False


class CreateExperimentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    traffic_allocation: float = Field(
        100.0, ge=0, le=100, description="Percentage of all users who enter the experiment"
    )
    variations: List[VariationRequest] = Field(
        ..., min_length=2, description="Variations in bucketing order (min 2)"
    )


class UpdateExperimentRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[ExperimentStatusEnum] = None
    traffic_allocation: Optional[float] = Field(None, ge=0, le=100)


class VariationResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    url: Optional[str] = None
    weight: float
    is_control: bool

    class Config:
        from_attributes = True


class ExperimentResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    status: ExperimentStatusEnum
    traffic_allocation: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    variations: List[VariationResponse] = []

    class Config:
        from_attributes = True


class ExperimentListResponse(BaseModel):
    experiments: List[ExperimentResponse]
    total: int


# ============ Assignment & tracking ============


class AssignmentRequest(BaseModel):
    experiment_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class AssignmentResponse(BaseModel):
    experiment_id: str
    variation_id: Optional[str] = None
    variation_name: Optional[str] = None
    variation_url: Optional[str] = None
    assigned: bool


class TrackEventRequest(BaseModel):
    experiment_id: str = Field(..., min_length=1)
    variation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    event_type: EventTypeEnum
    event_name: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TrackEventResponse(BaseModel):
    id: str
    success: bool = True


# ============ Results ============


class ConfidenceIntervalResponse(BaseModel):
    lower: float
    upper: float


class VariationMetricsResponse(BaseModel):
    variation_id: str
    variation_name: str
    is_control: bool
    total_users: int
    conversions: int
    conversion_rate: float
    confidence_interval: ConfidenceIntervalResponse


class SignificanceResponse(BaseModel):
    is_significant: bool
    p_value: float
    confidence_level: float
    z_score: float


class ExperimentResultsResponse(BaseModel):
    experiment_id: str
    experiment_name: str
    status: ExperimentStatusEnum
    variations: List[VariationMetricsResponse]
    statistical_significance: Optional[SignificanceResponse] = None
    sample_size: int
    winner: Optional[str] = None
    relative_lift: Optional[float] = None  # Best challenger over control, percent
    sufficient_sample: bool = False  # Every variation reached the recommended user count


class SampleSizeRequest(BaseModel):
    baseline_rate: float = Field(..., gt=0, lt=1, description="Current conversion rate")
    minimum_detectable_effect: float = Field(
        ..., gt=0, description="Relative lift to detect (0.2 = 20%)"
    )
    alpha: float = Field(0.05, gt=0, lt=1)
    power: float = Field(0.80, gt=0, lt=1)

    @model_validator(mode="after")
    def check_effect_reachable(self):
        if self.baseline_rate * (1 + self.minimum_detectable_effect) >= 1:
            raise ValueError("baseline_rate with this effect exceeds a rate of 1")
        return self


class SampleSizeResponse(BaseModel):
    baseline_rate: float
    minimum_detectable_effect: float
    alpha: float
    power: float
    sample_size_per_variation: int
