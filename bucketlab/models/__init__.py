from bucketlab.models.experiment import (  # noqa: F401
    Assignment,
    Event,
    EventType,
    Experiment,
    ExperimentStatus,
    Variation,
)
