"""
Experimentation module for deterministic assignment and A/B test analysis.

This module provides:
- Hash-based bucketing of users into variations (traffic gate + weighted split)
- Statistical analysis (Wilson intervals, two-proportion z-test)
- Results aggregation with winner selection
- Experiment management over a pluggable repository
"""

from bucketlab.services.experiments.assignment import (
    VariationConfig,
    assign_user_to_variation,
    is_experiment_eligible,
    select_variation,
)
from bucketlab.services.experiments.hashing import bucket_fraction
from bucketlab.services.experiments.repository import (
    ExperimentRepository,
    InMemoryExperimentRepository,
    SQLAlchemyExperimentRepository,
)
from bucketlab.services.experiments.results import (
    ExperimentConfig,
    ExperimentResults,
    VariationCounts,
    VariationMetrics,
    aggregate_results,
)
from bucketlab.services.experiments.service import ExperimentService
from bucketlab.services.experiments.stats import (
    ConfidenceInterval,
    ProportionSample,
    SignificanceResult,
    two_proportion_z_test,
    wilson_interval,
)

__all__ = [
    "bucket_fraction",
    "VariationConfig",
    "assign_user_to_variation",
    "is_experiment_eligible",
    "select_variation",
    "ConfidenceInterval",
    "ProportionSample",
    "SignificanceResult",
    "wilson_interval",
    "two_proportion_z_test",
    "ExperimentConfig",
    "ExperimentResults",
    "VariationCounts",
    "VariationMetrics",
    "aggregate_results",
    "ExperimentRepository",
    "InMemoryExperimentRepository",
    "SQLAlchemyExperimentRepository",
    "ExperimentService",
]
