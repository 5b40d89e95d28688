from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

REQUESTS_TOTAL = Counter(
    "total_requests",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY_SECONDS = Histogram(
    "request_latency_seconds",
    "HTTP request latency in seconds",
    labelnames=("method", "path"),
)
DB_QUERY_DURATION_SECONDS = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    labelnames=("operation",),
)
REDIS_LATENCY_SECONDS = Histogram(
    "redis_latency_seconds",
    "Redis command latency in seconds",
    labelnames=("operation",),
)
VERSION_PROBES_TOTAL = Counter(
    "version_probes_total",
    "Component channel probes by outcome",
    labelnames=("channel", "outcome"),
)
VERSION_PROBE_FALLBACKS_TOTAL = Counter(
    "version_probe_fallbacks_total",
    "Probes that needed a fallback transport",
    labelnames=("stage",),
)
VERSION_CHECK_CYCLE_DURATION_SECONDS = Histogram(
    "version_check_cycle_duration_seconds",
    "Duration of a full component version check cycle",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200),
)
VERSION_CHECK_CYCLES_TOTAL = Counter(
    "version_check_cycles_total",
    "Completed full version check cycles",
)
VERSION_PROBE_FAILURES_TOTAL = Counter(
    "version_probe_failures_total",
    "Channel probes that ended in potential_outage",
)
COMPONENT_RECONCILIATIONS_TOTAL = Counter(
    "component_reconciliations_total",
    "Incident impact reconciliations executed",
)

BACKGROUND_COUNTER_KEYS = {
    "version_check_cycles_total": "metrics:version_check_cycles_total",
    "version_probe_failures_total": "metrics:version_probe_failures_total",
}
_last_background_counter_values: dict[str, float] = {
    metric_name: 0.0 for metric_name in BACKGROUND_COUNTER_KEYS
}


def record_request(method: str, path: str, status_code: int, duration_seconds: float) -> None:
    REQUESTS_TOTAL.labels(method=method, path=path, status=str(status_code)).inc()
    REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def observe_db_query(duration_seconds: float, operation: str = "sql") -> None:
    DB_QUERY_DURATION_SECONDS.labels(operation=operation).observe(duration_seconds)


def observe_redis_latency(duration_seconds: float, operation: str) -> None:
    REDIS_LATENCY_SECONDS.labels(operation=operation).observe(duration_seconds)


def record_probe(channel: str, reachable: bool) -> None:
    VERSION_PROBES_TOTAL.labels(channel=channel, outcome="reachable" if reachable else "unreachable").inc()


def record_probe_fallback(stage: str) -> None:
    VERSION_PROBE_FALLBACKS_TOTAL.labels(stage=stage).inc()


def increment_background_counter(metric_name: str, amount: int = 1) -> None:
    redis_key = BACKGROUND_COUNTER_KEYS.get(metric_name)
    if redis_key is None:
        return
    try:
        from app.infrastructure.cache.redis_client import get_redis_client

        redis_client = get_redis_client()
        with measure_redis("metrics_background_counter_incr"):
            redis_client.incrby(redis_key, amount)
    except Exception:
        # Worker counters are best effort; a missing Redis must not fail a check cycle.
        return


def _sync_background_counters_from_redis() -> None:
    try:
        from app.infrastructure.cache.redis_client import get_redis_client

        redis_client = get_redis_client()
        with measure_redis("metrics_background_counter_sync"):
            raw_values = redis_client.mget(list(BACKGROUND_COUNTER_KEYS.values()))
    except Exception:
        return

    current_by_metric: dict[str, float] = {}
    for idx, metric_name in enumerate(BACKGROUND_COUNTER_KEYS):
        raw_value = raw_values[idx] if raw_values else None
        current_by_metric[metric_name] = float(raw_value or 0.0)

    mapping = {
        "version_check_cycles_total": VERSION_CHECK_CYCLES_TOTAL,
        "version_probe_failures_total": VERSION_PROBE_FAILURES_TOTAL,
    }
    for metric_name, collector in mapping.items():
        last_value = _last_background_counter_values.get(metric_name, 0.0)
        current_value = current_by_metric.get(metric_name, 0.0)
        delta = current_value - last_value
        if delta > 0:
            collector.inc(delta)
        _last_background_counter_values[metric_name] = current_value


@contextmanager
def measure_redis(operation: str):
    started_at = perf_counter()
    try:
        yield
    finally:
        observe_redis_latency(perf_counter() - started_at, operation=operation)


def metrics_response() -> Response:
    _sync_background_counters_from_redis()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
