"""
Prometheus metrics for brief generation.

Collectors live in the default prometheus_client registry of whichever
process imports this module. Exposing them (start_http_server, a web
framework's /metrics route, a push gateway) is the host application's job.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram


PROVIDER_REQUEST_DURATION_SECONDS = Histogram(
    "dbrief_provider_request_duration_seconds",
    "Generation service request latency in seconds.",
    labelnames=("provider", "model", "outcome"),
    buckets=(0.25, 0.5, 1, 2.5, 5, 10, 20, 30, 60, 120),
)

PROVIDER_REQUESTS_TOTAL = Counter(
    "dbrief_provider_requests_total",
    "Total generation service requests by outcome.",
    labelnames=("provider", "model", "outcome"),
)

PROVIDER_TIMEOUTS_TOTAL = Counter(
    "dbrief_provider_timeouts_total",
    "Total generation service requests that timed out.",
    labelnames=("provider", "model"),
)

PROVIDER_RETRIES_TOTAL = Counter(
    "dbrief_provider_retries_total",
    "Total transport-level retries issued by the HTTP provider.",
    labelnames=("provider", "model"),
)

PIPELINE_ATTEMPTS_TOTAL = Counter(
    "dbrief_pipeline_attempts_total",
    "Total generation attempts by validation outcome.",
    labelnames=("outcome",),
)

GATE_FAILURES_TOTAL = Counter(
    "dbrief_gate_failures_total",
    "Total validation gate failures by error code.",
    labelnames=("code",),
)

PIPELINE_RUNS_TOTAL = Counter(
    "dbrief_pipeline_runs_total",
    "Total pipeline runs by terminal state.",
    labelnames=("outcome",),
)

PIPELINE_RETRY_COUNT = Histogram(
    "dbrief_pipeline_retry_count",
    "Retries used per completed pipeline run.",
    buckets=(0, 1, 2, 3, 5, 8),
)


def record_provider_request(provider: str, model: str, outcome: str, duration_ms: float) -> None:
    PROVIDER_REQUESTS_TOTAL.labels(provider=provider, model=model, outcome=outcome).inc()
    PROVIDER_REQUEST_DURATION_SECONDS.labels(provider=provider, model=model, outcome=outcome).observe(
        max(0.0, duration_ms) / 1000.0
    )


def record_provider_timeout(provider: str, model: str) -> None:
    PROVIDER_TIMEOUTS_TOTAL.labels(provider=provider, model=model).inc()


def record_provider_retry(provider: str, model: str) -> None:
    PROVIDER_RETRIES_TOTAL.labels(provider=provider, model=model).inc()


def record_attempt(outcome: str) -> None:
    PIPELINE_ATTEMPTS_TOTAL.labels(outcome=outcome).inc()


def record_gate_failure(code: str) -> None:
    GATE_FAILURES_TOTAL.labels(code=code).inc()


def record_pipeline_run(outcome: str, retry_count: int | None = None) -> None:
    PIPELINE_RUNS_TOTAL.labels(outcome=outcome).inc()
    if retry_count is not None:
        PIPELINE_RETRY_COUNT.observe(max(0, retry_count))
