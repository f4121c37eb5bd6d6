"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

PIPELINE_ATTEMPTS = Counter(
    "recording_pipeline_attempts_total",
    "Recording processing attempts by outcome",
    ("outcome",),
)

PIPELINE_TERMINAL = Counter(
    "recording_pipeline_terminal_total",
    "Recordings reaching a terminal analysis status",
    ("status",),
)

PIPELINE_STAGE_LATENCY = Histogram(
    "recording_pipeline_stage_duration_seconds",
    "Duration of individual recording pipeline stages",
    ("stage",),
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

PIPELINE_DEGRADED = Counter(
    "recording_pipeline_degraded_total",
    "Secondary pipeline stages that failed and were skipped",
    ("stage",),
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def record_attempt(outcome: str) -> None:
    """Count one pipeline attempt (`success` or `error`)."""

    PIPELINE_ATTEMPTS.labels(outcome=outcome).inc()


def record_terminal(status: str) -> None:
    PIPELINE_TERMINAL.labels(status=status).inc()


def observe_stage(stage: str, duration_seconds: float) -> None:
    PIPELINE_STAGE_LATENCY.labels(stage=stage).observe(max(duration_seconds, 0))


def record_degraded_stage(stage: str) -> None:
    PIPELINE_DEGRADED.labels(stage=stage).inc()
