"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

import logging

from prometheus_client import Counter, Gauge, Histogram, Summary

log = logging.getLogger(__name__)


REQUEST_COUNTER = Counter(
	"soundmatch_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"soundmatch_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

REDIS_UP = Gauge("soundmatch_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("soundmatch_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("soundmatch_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("soundmatch_postgres_latency_seconds", "Postgres ping latency (seconds)")

STORE_OPERATION_DURATION = Histogram(
	"soundmatch_store_operation_duration_seconds",
	"Time a pooled Postgres connection was held per logical operation",
	["operation"],
	buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.2, 0.5, 1.0, 2.5),
)

STORE_SLOW_OPERATIONS = Counter(
	"soundmatch_store_slow_operations_total",
	"Postgres operations held longer than the slow threshold",
	["operation"],
)

MATCH_SCORES_COMPUTED = Counter(
	"soundmatch_match_scores_computed_total",
	"Pairwise compatibility scores computed from signals",
)

MATCH_SCORE_DURATION = Histogram(
	"soundmatch_match_score_duration_seconds",
	"Time to load signals and compute one pairwise score",
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

MATCH_SCORE_CACHE = Counter(
	"soundmatch_match_score_cache_total",
	"Score cache lookups",
	["result"],
)

RECALC_NOTIFICATIONS = Counter(
	"soundmatch_recalc_notifications_total",
	"Signal change notifications received by the recalculation scheduler",
	["result"],
)

RECALC_DRAINS = Counter(
	"soundmatch_recalc_drains_total",
	"Recalculation drain executions",
	["result"],
)

RECALC_DRAIN_DURATION = Histogram(
	"soundmatch_recalc_drain_duration_seconds",
	"Duration of one recalculation drain",
	buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0),
)

RECALC_USERS = Counter(
	"soundmatch_recalc_users_total",
	"Users processed by recalculation drains",
	["result"],
)

RECALC_CANDIDATE_FAILURES = Counter(
	"soundmatch_recalc_candidate_failures_total",
	"Candidate scoring failures skipped during recalculation",
)

RECALC_RETRIES = Counter(
	"soundmatch_recalc_retries_total",
	"Recalculation job retries",
	["result"],
)

RECALC_PENDING = Gauge(
	"soundmatch_recalc_pending_users",
	"Users waiting in the recalculation set",
)

RECALC_PENDING_TTL = Gauge(
	"soundmatch_recalc_pending_ttl_seconds",
	"Remaining lifetime of the recalculation set (-1 none, -2 missing)",
)

RECALC_STUCK = Gauge(
	"soundmatch_recalc_stuck",
	"1 when the recalculation set is close to expiring without a drain",
)

RECOMMENDATION_ITEMS = Counter(
	"soundmatch_recommendation_items_total",
	"Recommendation items served per source tier",
	["kind", "source"],
)

RECOMMENDATION_CACHE = Counter(
	"soundmatch_recommendation_cache_total",
	"Recommendation cache lookups",
	["kind", "result"],
)

CATALOG_REQUESTS = Counter(
	"soundmatch_catalog_requests_total",
	"Outbound catalog service requests",
	["endpoint", "result"],
)

SONG_METADATA = Counter(
	"soundmatch_song_metadata_total",
	"Song metadata ensure-present outcomes",
	["result"],
)

LISTEN_EVENTS = Counter(
	"soundmatch_listen_events_total",
	"Listening events ingested",
)

BACKGROUND_RUNS = Counter(
	"soundmatch_background_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"soundmatch_background_duration_seconds",
	"Background job execution time",
	["name"],
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)


def observe_store_operation(operation: str, elapsed_seconds: float) -> None:
	STORE_OPERATION_DURATION.labels(operation=operation).observe(elapsed_seconds)


def inc_slow_store_operation(operation: str) -> None:
	STORE_SLOW_OPERATIONS.labels(operation=operation).inc()


def observe_match_score(elapsed_seconds: float) -> None:
	MATCH_SCORES_COMPUTED.inc()
	MATCH_SCORE_DURATION.observe(elapsed_seconds)


def inc_score_cache(result: str) -> None:
	MATCH_SCORE_CACHE.labels(result=result).inc()


def inc_recalc_notification(result: str) -> None:
	RECALC_NOTIFICATIONS.labels(result=result).inc()


def record_recalc_drain(result: str, *, duration_seconds: float | None = None) -> None:
	RECALC_DRAINS.labels(result=result).inc()
	if duration_seconds is not None:
		RECALC_DRAIN_DURATION.observe(duration_seconds)


def inc_recalc_user(result: str) -> None:
	RECALC_USERS.labels(result=result).inc()


def inc_recalc_candidate_failure() -> None:
	RECALC_CANDIDATE_FAILURES.inc()


def inc_recalc_retry(result: str) -> None:
	RECALC_RETRIES.labels(result=result).inc()


def set_recalc_pending(size: int, ttl_seconds: int, *, stuck: bool) -> None:
	RECALC_PENDING.set(size)
	RECALC_PENDING_TTL.set(ttl_seconds)
	RECALC_STUCK.set(1 if stuck else 0)


def inc_recommendation_items(kind: str, source: str, count: int = 1) -> None:
	if count > 0:
		RECOMMENDATION_ITEMS.labels(kind=kind, source=source).inc(count)


def inc_recommendation_cache(kind: str, result: str) -> None:
	RECOMMENDATION_CACHE.labels(kind=kind, result=result).inc()


def inc_catalog_request(endpoint: str, result: str) -> None:
	CATALOG_REQUESTS.labels(endpoint=endpoint, result=result).inc()


def inc_song_metadata(result: str) -> None:
	SONG_METADATA.labels(result=result).inc()


def inc_listen_event() -> None:
	LISTEN_EVENTS.inc()


def record_job_run(name: str, *, result: str, duration_seconds: float | None = None) -> None:
	BACKGROUND_RUNS.labels(name=name, result=result).inc()
	if duration_seconds is not None:
		BACKGROUND_DURATION.labels(name=name).observe(duration_seconds)
