from bucketlab.middleware.telemetry import TelemetryMiddleware

__all__ = ["TelemetryMiddleware"]
