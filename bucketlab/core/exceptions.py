"""
Error taxonomy for bucketlab.

All errors are local input-validation failures: nothing is retried and
nothing is recovered internally. The API layer maps every subclass of
BucketlabError to a 400 response.
"""

from typing import Any, Dict, Optional


class BucketlabError(Exception):
    """Base class for all bucketlab errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# ============ Engine errors ============


class InvalidConfiguration(BucketlabError):
    """Variation weights or traffic allocation cannot produce an assignment."""


class NoControlDefined(BucketlabError):
    """Zero or several variations are flagged as control."""

    def __init__(self, control_count: int):
        super().__init__(
            f"Exactly one variation must be marked as control, found {control_count}",
            details={"control_count": control_count},
        )
        self.control_count = control_count


class UnsupportedConfidenceLevel(BucketlabError):
    """Requested confidence level has no known critical value."""

    def __init__(self, confidence_level: float, supported: Optional[list] = None):
        supported = supported or []
        super().__init__(
            f"Unsupported confidence level {confidence_level}; "
            f"supported levels are {', '.join(str(s) for s in supported)}",
            details={"confidence_level": confidence_level, "supported": supported},
        )
        self.confidence_level = confidence_level


class InvalidEventCounts(BucketlabError):
    """Aggregated counts violate 0 <= conversions <= total_users."""


# ============ Service errors ============


class InvalidStatusTransition(BucketlabError):
    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            details={"current": current, "requested": requested},
        )


class ExperimentNotDeletable(BucketlabError):
    def __init__(self, status: str):
        super().__init__(
            "Only draft experiments can be deleted", details={"status": status}
        )


class VariationNotFound(BucketlabError):
    def __init__(self, variation_id: str, experiment_id: str):
        super().__init__(
            f"Variation {variation_id} not found in experiment {experiment_id}",
            details={"variation_id": variation_id, "experiment_id": experiment_id},
        )
