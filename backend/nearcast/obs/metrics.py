"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary


REQUEST_COUNTER = Counter(
	"nearcast_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"nearcast_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

PROXIMITY_QUERIES = Counter(
	"nearcast_proximity_queries_total",
	"Proximity queries served",
	["kind"],
)

PROXIMITY_RESULTS = Summary(
	"nearcast_proximity_results",
	"Result count per proximity query",
	["kind"],
)

PROXIMITY_BOUNDARY_REJECTS = Counter(
	"nearcast_proximity_boundary_rejects_total",
	"Index candidates dropped by the exact distance check",
	["kind"],
)

POSTS_CREATED = Counter(
	"nearcast_posts_created_total",
	"Posts created",
)

POSTS_DELETED = Counter(
	"nearcast_posts_deleted_total",
	"Posts removed",
	["reason"],
)

LOCATION_UPDATES = Counter(
	"nearcast_location_updates_total",
	"Location updates received",
	["result"],
)

REDIS_UP = Gauge("nearcast_redis_up", "Redis availability (1=up)")
REDIS_LATENCY = Histogram(
	"nearcast_redis_ping_seconds",
	"Redis ping latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)
POSTGRES_UP = Gauge("nearcast_postgres_up", "Postgres availability (1=up)")
POSTGRES_LATENCY = Histogram(
	"nearcast_postgres_ping_seconds",
	"Postgres readiness query latency in seconds",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
)

BACKGROUND_RUNS = Counter(
	"nearcast_background_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"nearcast_background_duration_seconds",
	"Background job duration in seconds",
	["name"],
	buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def inc_proximity_query(kind: str) -> None:
	PROXIMITY_QUERIES.labels(kind=kind).inc()


def observe_proximity_results(kind: str, count: int) -> None:
	PROXIMITY_RESULTS.labels(kind=kind).observe(count)


def inc_boundary_rejects(kind: str, count: int = 1) -> None:
	PROXIMITY_BOUNDARY_REJECTS.labels(kind=kind).inc(count)


def inc_post_created() -> None:
	POSTS_CREATED.inc()


def inc_post_deleted(reason: str, count: int = 1) -> None:
	POSTS_DELETED.labels(reason=reason).inc(count)


def inc_location_update(result: str) -> None:
	LOCATION_UPDATES.labels(result=result).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
