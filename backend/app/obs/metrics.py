"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

REQUEST_COUNTER = Counter(
	"residence_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"residence_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

CLAIM_OUTCOMES = Counter(
	"residence_claim_outcomes_total",
	"Residence claim attempts by flow and terminal state",
	["flow", "status", "reason"],
)

CLAIM_CONFLICT_RETRIES = Counter(
	"residence_claim_conflict_retries_total",
	"Claim attempts re-run after a serialization or deadlock failure",
	["flow"],
)

JOIN_CODE_ROTATIONS = Counter(
	"residence_join_code_rotations_total",
	"Unit join codes rotated",
)

JOIN_CODE_RATE_LIMITED = Counter(
	"residence_join_code_rate_limited_total",
	"Dependent claims refused by the join code attempt limiter",
)

INVITATIONS_CREATED = Counter(
	"residence_invitations_created_total",
	"Invitation codes created",
)

CLAIM_NOTIFICATIONS = Counter(
	"residence_claim_notifications_total",
	"Claim notifications handed to the notification stream",
	["result"],
)

REDIS_UP = Gauge("residence_redis_up", "Redis availability (1=up,0=down)")
REDIS_LATENCY = Summary("residence_redis_latency_seconds", "Redis ping latency (seconds)")

POSTGRES_UP = Gauge("residence_postgres_up", "Postgres availability (1=up,0=down)")
POSTGRES_LATENCY = Summary("residence_postgres_latency_seconds", "Postgres ping latency (seconds)")


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def record_claim(flow: str, status: str, reason: str | None) -> None:
	CLAIM_OUTCOMES.labels(flow=flow, status=status, reason=reason or "none").inc()


def inc_claim_conflict_retry(flow: str) -> None:
	CLAIM_CONFLICT_RETRIES.labels(flow=flow).inc()


def inc_join_code_rotation() -> None:
	JOIN_CODE_ROTATIONS.inc()


def inc_join_code_rate_limited() -> None:
	JOIN_CODE_RATE_LIMITED.inc()


def inc_invitation_created() -> None:
	INVITATIONS_CREATED.inc()


def claim_notification(result: str) -> None:
	CLAIM_NOTIFICATIONS.labels(result=result).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
