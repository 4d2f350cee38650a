"""Per-variation metrics and winner selection for an experiment.

Counts come in already aggregated: total_users is the number of distinct
users with at least one event in the variation, and conversions is the
number of distinct users with a conversion event. Counting converters
rather than conversion events keeps conversions <= total_users, so every
conversion rate lies in [0, 1].
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from bucketlab.core.exceptions import InvalidEventCounts, NoControlDefined
from bucketlab.services.experiments.assignment import VariationConfig
from bucketlab.services.experiments.stats import (
    DEFAULT_CONFIDENCE_LEVEL,
    MIN_SAMPLE_SIZE,
    ConfidenceInterval,
    ProportionSample,
    SignificanceResult,
    calculate_lift,
    has_sufficient_sample_size,
    two_proportion_z_test,
    wilson_interval,
)

# Advisory only, reported as sufficient_sample and never used to pick a winner
RECOMMENDED_USERS_PER_VARIATION = 100


@dataclass(frozen=True)
class ExperimentConfig:
    id: str
    name: str
    status: str
    traffic_allocation: float
    variations: Sequence[VariationConfig] = field(default_factory=tuple)


@dataclass(frozen=True)
class VariationCounts:
    total_users: int = 0
    conversions: int = 0


@dataclass(frozen=True)
class VariationMetrics:
    variation_id: str
    variation_name: str
    is_control: bool
    total_users: int
    conversions: int
    conversion_rate: float
    confidence_interval: ConfidenceInterval


@dataclass(frozen=True)
class ExperimentResults:
    experiment_id: str
    experiment_name: str
    status: str
    variations: List[VariationMetrics]
    sample_size: int
    statistical_significance: Optional[SignificanceResult] = None
    winner: Optional[str] = None
    relative_lift: Optional[float] = None
    sufficient_sample: bool = False


def validate_counts(variation_id: str, counts: VariationCounts) -> None:
    if counts.total_users < 0 or counts.conversions < 0:
        raise InvalidEventCounts(
            f"Counts for variation {variation_id} must be non-negative",
            details={"variation_id": variation_id},
        )
    if counts.conversions > counts.total_users:
        raise InvalidEventCounts(
            f"Variation {variation_id} has {counts.conversions} converters "
            f"but only {counts.total_users} users",
            details={"variation_id": variation_id},
        )


def build_variation_metrics(
    variation: VariationConfig,
    counts: VariationCounts,
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
) -> VariationMetrics:
    validate_counts(variation.id, counts)

    total_users = counts.total_users
    conversions = counts.conversions
    conversion_rate = conversions / total_users if total_users > 0 else 0.0

    return VariationMetrics(
        variation_id=variation.id,
        variation_name=variation.name,
        is_control=bool(variation.is_control),
        total_users=total_users,
        conversions=conversions,
        conversion_rate=conversion_rate,
        confidence_interval=wilson_interval(conversions, total_users, confidence_level),
    )


def find_control(metrics: Sequence[VariationMetrics]) -> VariationMetrics:
    controls = [m for m in metrics if m.is_control]
    if len(controls) != 1:
        raise NoControlDefined(len(controls))
    return controls[0]


def find_best_challenger(metrics: Sequence[VariationMetrics]) -> Optional[VariationMetrics]:
    """Highest conversion rate among non-control variations, first wins ties."""
    best = None
    for m in metrics:
        if m.is_control:
            continue
        if best is None or m.conversion_rate > best.conversion_rate:
            best = m
    return best


def aggregate_results(
    experiment: ExperimentConfig,
    counts: Mapping[str, VariationCounts],
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL,
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> ExperimentResults:
    """Compose the results report for an experiment.

    Variations missing from counts are reported with zero users. A winner is
    only declared when the control vs. best challenger test is significant
    and the challenger converts better than control.
    """
    metrics = [
        build_variation_metrics(v, counts.get(v.id, VariationCounts()), confidence_level)
        for v in experiment.variations
    ]

    control = find_control(metrics)
    challenger = find_best_challenger(metrics)

    significance = None
    winner = None
    lift = None

    if challenger is not None:
        significance = two_proportion_z_test(
            ProportionSample(rate=control.conversion_rate, n=control.total_users),
            ProportionSample(rate=challenger.conversion_rate, n=challenger.total_users),
            confidence_level=confidence_level,
            min_sample_size=min_sample_size,
        )
        lift = calculate_lift(control.conversion_rate, challenger.conversion_rate)

        if significance.is_significant and challenger.conversion_rate > control.conversion_rate:
            winner = challenger.variation_id

    return ExperimentResults(
        experiment_id=experiment.id,
        experiment_name=experiment.name,
        status=experiment.status,
        variations=metrics,
        sample_size=sum(m.total_users for m in metrics),
        statistical_significance=significance,
        winner=winner,
        relative_lift=lift,
        sufficient_sample=all(
            has_sufficient_sample_size(m.total_users, RECOMMENDED_USERS_PER_VARIATION)
            for m in metrics
        ),
    )
