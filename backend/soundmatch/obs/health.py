"""Liveness and readiness probes for the engine's stores."""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Dict, Tuple

from soundmatch.infra import postgres
from soundmatch.infra.redis import redis_client
from soundmatch.obs import metrics
from soundmatch.settings import settings

LOGGER = logging.getLogger(__name__)

REDIS_TIMEOUT_SECONDS = 0.2
POSTGRES_TIMEOUT_SECONDS = 0.5


def _ok(started: float) -> Dict[str, Any]:
	return {"ok": True, "latency_ms": round((perf_counter() - started) * 1000, 2)}


async def check_redis() -> Dict[str, Any]:
	"""Ping the cache and queue store."""
	started = perf_counter()
	try:
		await asyncio.wait_for(redis_client.ping(), timeout=REDIS_TIMEOUT_SECONDS)
	except Exception as exc:
		metrics.mark_redis(False)
		LOGGER.warning("health.redis_failed", exc_info=True)
		return {"ok": False, "error": type(exc).__name__}
	metrics.mark_redis(True, latency_seconds=perf_counter() - started)
	return _ok(started)


async def check_postgres() -> Dict[str, Any]:
	"""Run `SELECT 1` and compare the newest applied migration against the minimum."""
	started = perf_counter()
	try:
		pool = await postgres.get_pool()
		async with pool.acquire() as conn:
			await asyncio.wait_for(conn.execute("SELECT 1"), timeout=POSTGRES_TIMEOUT_SECONDS)
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	except Exception as exc:
		metrics.mark_postgres(False)
		LOGGER.warning("health.postgres_failed", exc_info=True)
		return {"ok": False, "error": type(exc).__name__}
	metrics.mark_postgres(True, latency_seconds=perf_counter() - started)
	state = _ok(started)
	required = settings.health_min_migration
	state["migration"] = version
	if version is None or str(version) < required:
		state.update(ok=False, error="migration_behind", required=required)
	return state


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, postgres_state = await asyncio.gather(check_redis(), check_postgres())
	ok = bool(redis_state["ok"] and postgres_state["ok"])
	payload = {
		"status": "ok" if ok else "degraded",
		"checks": {"redis": redis_state, "postgres": postgres_state},
	}
	return (200 if ok else 503), payload
