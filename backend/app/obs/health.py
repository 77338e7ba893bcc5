"""Liveness, readiness and startup probes for the residence access service."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import asyncpg

from app.infra import postgres
from app.infra.redis import redis_client
from app.obs import metrics
from app.settings import settings

LOGGER = logging.getLogger(__name__)

_MIN_CODE_LENGTH = 4


async def _timed(
	name: str,
	probe: Callable[[], Awaitable[Any]],
	*,
	timeout: float,
	mark: Callable[..., None],
) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(probe(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		LOGGER.warning("%s readiness check failed", name, exc_info=True)
		return {"ok": False, "error": str(exc)}
	latency = perf_counter() - start
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def _redis_status() -> Dict[str, Any]:
	return await _timed("redis", redis_client.ping, timeout=0.2, mark=metrics.mark_redis)


async def _postgres_status() -> Tuple[Dict[str, Any], Optional[asyncpg.Pool]]:
	try:
		pool = await postgres.get_pool()
	except Exception as exc:  # pragma: no cover - connection bootstrap failure
		metrics.mark_postgres(False)
		LOGGER.warning("Postgres pool unavailable", exc_info=True)
		return {"ok": False, "error": str(exc)}, None

	async def _select_one() -> None:
		async with pool.acquire() as conn:
			await conn.execute("SELECT 1")

	return await _timed("postgres", _select_one, timeout=0.3, mark=metrics.mark_postgres), pool


async def _schema_status(pool: Optional[asyncpg.Pool], min_version: str) -> Dict[str, Any]:
	"""The residence tables exist once the expected migration has been applied."""
	if pool is None:
		return {"ok": False, "error": "pool_unavailable"}
	try:
		async with pool.acquire() as conn:
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	except asyncpg.PostgresError as exc:
		return {"ok": False, "error": type(exc).__name__}
	if version is None:
		return {"ok": False, "error": "no_migrations"}
	current = str(version)
	return {"ok": current >= min_version, "version": current, "required": min_version}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state = await _redis_status()
	postgres_state, pool = await _postgres_status()
	schema_state = await _schema_status(pool, settings.health_min_migration)
	ok = all(state.get("ok") for state in (redis_state, postgres_state, schema_state))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {
				"redis": redis_state,
				"postgres": postgres_state,
				"migrations": schema_state,
			},
		},
	)


async def startup() -> Tuple[int, Dict[str, Any]]:
	"""Refuse to report ready when code lengths would make codes trivially guessable."""
	too_short = [
		name
		for name, length in (
			("unit_join_code_length", settings.unit_join_code_length),
			("invitation_code_length", settings.invitation_code_length),
		)
		if length < _MIN_CODE_LENGTH
	]
	if too_short:
		return 503, {"status": "error", "error": "code_length_too_short", "settings": too_short}
	return 200, {"status": "ok"}
