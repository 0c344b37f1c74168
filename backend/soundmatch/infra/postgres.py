"""AsyncPG pool management for the backend."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		# Force 127.0.0.1 instead of localhost to avoid IPv6 resolution surprises
		dsn = settings.postgres_url.replace("localhost", "127.0.0.1")
		_pool = await asyncpg.create_pool(
			dsn=dsn,
			min_size=settings.postgres_min_pool_size,
			max_size=settings.postgres_max_pool_size,
			ssl="require" if settings.postgres_ssl else "disable",
		)
	return _pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None


@asynccontextmanager
async def connection(
	operation: str,
	*,
	pool: Optional[asyncpg.pool.Pool] = None,
) -> AsyncIterator[asyncpg.Connection]:
	"""Acquire a pooled connection for one logical store operation.

	The connection is always released, and the time it was held is recorded
	against `operation`. Holds above `slow_query_threshold_ms` are logged.
	"""
	source = pool or await get_pool()
	start = time.perf_counter()
	try:
		async with source.acquire() as conn:
			yield conn
	finally:
		elapsed = time.perf_counter() - start
		obs_metrics.observe_store_operation(operation, elapsed)
		if elapsed * 1000 >= settings.slow_query_threshold_ms:
			obs_metrics.inc_slow_store_operation(operation)
			_LOG.warning(
				"postgres.slow_operation",
				extra={"operation": operation, "duration_ms": round(elapsed * 1000, 2)},
			)
