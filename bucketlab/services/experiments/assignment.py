"""Deterministic assignment of users to experiment variations.

Assignment is hash-based: given the same (experiment_id, user_id) pair and
the same ordered variation list, the user always lands in the same
variation. Two independent hashes are used:

1. the traffic gate decides whether the user enters the experiment at all;
2. the variation hash is mapped onto cumulative normalized weights.

Variations are walked in definition order and never re-sorted, because
reordering after users have been bucketed would reshuffle live assignments.
The caller persists the result as a sticky assignment and is responsible
for checking eligibility before calling in.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from bucketlab.core.exceptions import InvalidConfiguration, NoControlDefined
from bucketlab.services.experiments.hashing import traffic_fraction, variation_fraction

MIN_VARIATIONS = 2


@dataclass(frozen=True)
class VariationConfig:
    id: str
    name: str
    weight: float  # Relative weight, any non-negative scale
    is_control: bool = False
    url: Optional[str] = None


V = TypeVar("V", bound=VariationConfig)


def is_experiment_eligible(status: str, traffic_allocation: float) -> bool:
    """Only running experiments with some traffic take new users."""
    return status == "running" and traffic_allocation > 0


def total_weight(variations: Sequence[VariationConfig]) -> float:
    """Sum of weights, rejecting negative weights and an empty total."""
    for variation in variations:
        if variation.weight < 0:
            raise InvalidConfiguration(
                f"Variation {variation.name!r} has negative weight {variation.weight}"
            )

    total = sum(v.weight for v in variations)
    if total <= 0:
        raise InvalidConfiguration("Total variation weight cannot be zero")
    return total


def validate_variations(variations: Sequence[VariationConfig]) -> None:
    """Check an experiment's variation set before it is stored."""
    if len(variations) < MIN_VARIATIONS:
        raise InvalidConfiguration(
            f"Experiment must have at least {MIN_VARIATIONS} variations, got {len(variations)}"
        )

    names = [v.name for v in variations]
    if len(names) != len(set(names)):
        raise InvalidConfiguration("Variation names must be unique")

    control_count = sum(1 for v in variations if v.is_control)
    if control_count != 1:
        raise NoControlDefined(control_count)

    total_weight(variations)


def select_variation(fraction: float, variations: Sequence[V]) -> V:
    """Map a fraction in [0, 1) onto the cumulative weight buckets.

    Bucket i covers (c[i-1], c[i]] so that the buckets partition [0, 1)
    with no gaps or overlaps. Zero-weight variations have an empty bucket
    and are never returned.
    """
    weight_sum = total_weight(variations)

    cumulative = 0.0
    last_eligible = None
    for variation in variations:
        if variation.weight == 0:
            continue
        last_eligible = variation
        cumulative += variation.weight / weight_sum
        if fraction <= cumulative:
            return variation

    # Floating point drift left the fraction above the final bound
    return last_eligible


def assign_user_to_variation(
    user_id: str,
    experiment_id: str,
    traffic_allocation: float,
    variations: Sequence[V],
) -> Optional[V]:
    """Assign a user to a variation, or return None if they are not in traffic.

    Args:
        user_id: Unique user identifier
        experiment_id: Experiment ID
        traffic_allocation: Percentage of all users who enter the experiment (0-100)
        variations: Variations in definition order

    Raises:
        InvalidConfiguration: traffic allocation outside [0, 100], a negative
            weight, or weights summing to zero
    """
    if not 0 <= traffic_allocation <= 100:
        raise InvalidConfiguration(
            f"Traffic allocation must be between 0 and 100, got {traffic_allocation}"
        )

    if traffic_allocation == 0:
        return None

    if traffic_fraction(experiment_id, user_id) > traffic_allocation / 100:
        return None

    return select_variation(variation_fraction(experiment_id, user_id), variations)
