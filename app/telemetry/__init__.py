"""Telemetry helpers and metrics."""

from .metrics import (
    ERROR_COUNTER,
    PIPELINE_ATTEMPTS,
    PIPELINE_DEGRADED,
    PIPELINE_STAGE_LATENCY,
    PIPELINE_TERMINAL,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    observe_request,
    observe_stage,
    record_attempt,
    record_degraded_stage,
    record_terminal,
)

__all__ = [
    "ERROR_COUNTER",
    "PIPELINE_ATTEMPTS",
    "PIPELINE_DEGRADED",
    "PIPELINE_STAGE_LATENCY",
    "PIPELINE_TERMINAL",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "observe_request",
    "observe_stage",
    "record_attempt",
    "record_degraded_stage",
    "record_terminal",
]
