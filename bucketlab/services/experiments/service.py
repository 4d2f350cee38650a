import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from bucketlab.config import get_settings
from bucketlab.core.exceptions import (
    ExperimentNotDeletable,
    InvalidStatusTransition,
    VariationNotFound,
)
from bucketlab.models.experiment import (
    Assignment,
    Event,
    EventType,
    Experiment,
    ExperimentStatus,
    Variation,
)
from bucketlab.models.schemas import (
    AssignmentResponse,
    ConfidenceIntervalResponse,
    CreateExperimentRequest,
    ExperimentResponse,
    ExperimentResultsResponse,
    ExperimentStatusEnum,
    SampleSizeRequest,
    SampleSizeResponse,
    SignificanceResponse,
    TrackEventRequest,
    UpdateExperimentRequest,
    VariationMetricsResponse,
    VariationResponse,
)
from bucketlab.services.experiments.assignment import (
    VariationConfig,
    assign_user_to_variation,
    is_experiment_eligible,
    validate_variations,
)
from bucketlab.services.experiments.repository import ExperimentRepository
from bucketlab.services.experiments.results import (
    ExperimentConfig,
    ExperimentResults,
    aggregate_results,
)
from bucketlab.services.experiments.stats import estimate_required_sample_size

logger = structlog.get_logger(__name__)

# Completed is terminal
VALID_TRANSITIONS = {
    ExperimentStatus.DRAFT: {ExperimentStatus.RUNNING},
    ExperimentStatus.RUNNING: {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED},
    ExperimentStatus.PAUSED: {ExperimentStatus.RUNNING, ExperimentStatus.COMPLETED},
    ExperimentStatus.COMPLETED: set(),
}


def generate_id(prefix: str = "") -> str:
    value = uuid.uuid4().hex
    return f"{prefix}_{value}" if prefix else value


def to_variation_config(variation: Variation) -> VariationConfig:
    return VariationConfig(
        id=variation.id,
        name=variation.name,
        weight=variation.weight,
        is_control=bool(variation.is_control),
        url=variation.url,
    )


def to_experiment_config(experiment: Experiment) -> ExperimentConfig:
    return ExperimentConfig(
        id=experiment.id,
        name=experiment.name,
        status=ExperimentStatus(experiment.status).value,
        traffic_allocation=experiment.traffic_allocation,
        variations=tuple(to_variation_config(v) for v in experiment.variations),
    )


class ExperimentService:
    def __init__(self, repository: ExperimentRepository):
        self.repository = repository
        self.settings = get_settings()

    async def create_experiment(self, request: CreateExperimentRequest) -> Experiment:
        experiment_id = generate_id("exp")
        variations = [
            Variation(
                id=generate_id("var"),
                experiment_id=experiment_id,
                name=v.name,
                description=v.description,
                url=v.url,
                weight=v.weight,
                is_control=v.is_control,
                position=position,
            )
            for position, v in enumerate(request.variations)
        ]
        validate_variations([to_variation_config(v) for v in variations])

        experiment = Experiment(
            id=experiment_id,
            name=request.name,
            description=request.description,
            status=ExperimentStatus.DRAFT,
            traffic_allocation=request.traffic_allocation,
            variations=variations,
        )

        experiment = await self.repository.create_experiment(experiment)
        logger.info(
            "experiment_created",
            experiment_id=experiment.id,
            variations=len(variations),
            traffic_allocation=experiment.traffic_allocation,
        )
        return experiment

    async def get_experiment(self, experiment_id: str) -> Optional[Experiment]:
        return await self.repository.get_experiment(experiment_id)

    async def list_experiments(
        self,
        status: Optional[ExperimentStatusEnum] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Experiment]:
        return await self.repository.list_experiments(
            status=ExperimentStatus(status.value) if status else None,
            limit=limit,
            offset=offset,
        )

    async def update_experiment(
        self, experiment_id: str, request: UpdateExperimentRequest
    ) -> Optional[Experiment]:
        experiment = await self.repository.get_experiment(experiment_id)
        if not experiment:
            return None

        if request.status is not None:
            self._apply_status(experiment, ExperimentStatus(request.status.value))
        if request.name is not None:
            experiment.name = request.name
        if request.description is not None:
            experiment.description = request.description
        if request.traffic_allocation is not None:
            experiment.traffic_allocation = request.traffic_allocation

        return await self.repository.save_experiment(experiment)

    def _apply_status(self, experiment: Experiment, requested: ExperimentStatus) -> None:
        current = ExperimentStatus(experiment.status)
        if requested == current:
            return
        if requested not in VALID_TRANSITIONS[current]:
            raise InvalidStatusTransition(current.value, requested.value)

        now = datetime.now(timezone.utc)
        if requested == ExperimentStatus.RUNNING and experiment.started_at is None:
            experiment.started_at = now
        if requested == ExperimentStatus.COMPLETED and experiment.ended_at is None:
            experiment.ended_at = now

        experiment.status = requested
        logger.info(
            "experiment_status_changed",
            experiment_id=experiment.id,
            from_status=current.value,
            to_status=requested.value,
        )

    async def delete_experiment(self, experiment_id: str) -> bool:
        experiment = await self.repository.get_experiment(experiment_id)
        if not experiment:
            return False

        status = ExperimentStatus(experiment.status)
        if status != ExperimentStatus.DRAFT:
            raise ExperimentNotDeletable(status.value)

        await self.repository.delete_experiment(experiment)
        logger.info("experiment_deleted", experiment_id=experiment_id)
        return True

    async def assign(self, experiment_id: str, user_id: str) -> Optional[AssignmentResponse]:
        """Return the user's sticky variation, bucketing them on first contact.

        Returns None when the experiment does not exist.
        """
        experiment = await self.repository.get_experiment(experiment_id)
        if not experiment:
            return None

        # Plain snapshot, still valid if the repository rolls back its session
        config = to_experiment_config(experiment)

        existing = await self.repository.get_assignment(experiment_id, user_id)
        if existing:
            variation = self._find_variation(config, existing.variation_id)
            if variation is not None:
                logger.debug(
                    "assignment_reused", experiment_id=experiment_id, user_id=user_id
                )
                return self._assigned(experiment_id, variation)

        if not is_experiment_eligible(config.status, config.traffic_allocation):
            logger.debug(
                "assignment_excluded",
                experiment_id=experiment_id,
                user_id=user_id,
                reason="ineligible",
                status=config.status,
            )
            return AssignmentResponse(experiment_id=experiment_id, assigned=False)

        chosen = assign_user_to_variation(
            user_id, experiment_id, config.traffic_allocation, config.variations
        )
        if chosen is None:
            logger.debug(
                "assignment_excluded",
                experiment_id=experiment_id,
                user_id=user_id,
                reason="traffic",
            )
            return AssignmentResponse(experiment_id=experiment_id, assigned=False)

        assignment_id = generate_id("asn")
        stored = await self.repository.create_assignment_if_absent(
            Assignment(
                id=assignment_id,
                experiment_id=experiment_id,
                variation_id=chosen.id,
                user_id=user_id,
            )
        )
        logger.info(
            "assignment_created" if stored.id == assignment_id else "assignment_reused",
            experiment_id=experiment_id,
            user_id=user_id,
            variation_id=stored.variation_id,
        )

        variation = self._find_variation(config, stored.variation_id)
        if variation is None:
            return AssignmentResponse(experiment_id=experiment_id, assigned=False)
        return self._assigned(experiment_id, variation)

    async def track_event(self, request: TrackEventRequest) -> Optional[Event]:
        """Record an event. Returns None when the experiment does not exist."""
        experiment = await self.repository.get_experiment(request.experiment_id)
        if not experiment:
            return None

        if self._find_variation(to_experiment_config(experiment), request.variation_id) is None:
            raise VariationNotFound(request.variation_id, request.experiment_id)

        event = await self.repository.record_event(
            Event(
                id=generate_id("evt"),
                experiment_id=request.experiment_id,
                variation_id=request.variation_id,
                user_id=request.user_id,
                event_type=EventType(request.event_type.value),
                event_name=request.event_name,
                metadata_=request.metadata,
            )
        )
        logger.info(
            "event_tracked",
            experiment_id=request.experiment_id,
            variation_id=request.variation_id,
            event_type=request.event_type.value,
        )
        return event

    async def get_results(
        self, experiment_id: str, confidence_level: Optional[float] = None
    ) -> Optional[ExperimentResults]:
        experiment = await self.repository.get_experiment(experiment_id)
        if not experiment:
            return None

        if confidence_level is None:
            confidence_level = self.settings.DEFAULT_CONFIDENCE_LEVEL

        counts = await self.repository.get_variation_counts(experiment_id)
        results = aggregate_results(
            to_experiment_config(experiment),
            counts,
            confidence_level=confidence_level,
            min_sample_size=self.settings.MIN_SAMPLE_SIZE,
        )

        logger.info(
            "results_computed",
            experiment_id=experiment_id,
            sample_size=results.sample_size,
            winner=results.winner,
        )
        return results

    def estimate_sample_size(self, request: SampleSizeRequest) -> SampleSizeResponse:
        return SampleSizeResponse(
            baseline_rate=request.baseline_rate,
            minimum_detectable_effect=request.minimum_detectable_effect,
            alpha=request.alpha,
            power=request.power,
            sample_size_per_variation=estimate_required_sample_size(
                request.baseline_rate,
                request.minimum_detectable_effect,
                alpha=request.alpha,
                power=request.power,
            ),
        )

    @staticmethod
    def _find_variation(
        experiment: ExperimentConfig, variation_id: str
    ) -> Optional[VariationConfig]:
        for variation in experiment.variations:
            if variation.id == variation_id:
                return variation
        return None

    @staticmethod
    def _assigned(experiment_id: str, variation: VariationConfig) -> AssignmentResponse:
        return AssignmentResponse(
            experiment_id=experiment_id,
            variation_id=variation.id,
            variation_name=variation.name,
            variation_url=variation.url,
            assigned=True,
        )

    def to_response(self, experiment: Experiment) -> ExperimentResponse:
        return ExperimentResponse(
            id=experiment.id,
            name=experiment.name,
            description=experiment.description,
            status=ExperimentStatusEnum(ExperimentStatus(experiment.status).value),
            traffic_allocation=experiment.traffic_allocation,
            created_at=experiment.created_at,
            updated_at=experiment.updated_at,
            started_at=experiment.started_at,
            ended_at=experiment.ended_at,
            variations=[VariationResponse.model_validate(v) for v in experiment.variations],
        )

    def results_to_response(self, results: ExperimentResults) -> ExperimentResultsResponse:
        significance = None
        if results.statistical_significance is not None:
            s = results.statistical_significance
            significance = SignificanceResponse(
                is_significant=s.is_significant,
                p_value=s.p_value,
                confidence_level=s.confidence_level,
                z_score=s.z_score,
            )

        return ExperimentResultsResponse(
            experiment_id=results.experiment_id,
            experiment_name=results.experiment_name,
            status=ExperimentStatusEnum(results.status),
            variations=[
                VariationMetricsResponse(
                    variation_id=m.variation_id,
                    variation_name=m.variation_name,
                    is_control=m.is_control,
                    total_users=m.total_users,
                    conversions=m.conversions,
                    conversion_rate=m.conversion_rate,
                    confidence_interval=ConfidenceIntervalResponse(
                        lower=m.confidence_interval.lower,
                        upper=m.confidence_interval.upper,
                    ),
                )
                for m in results.variations
            ],
            statistical_significance=significance,
            sample_size=results.sample_size,
            winner=results.winner,
            relative_lift=results.relative_lift,
            sufficient_sample=results.sufficient_sample,
        )
