"""Background worker that drains debounced match recalculation jobs."""

from __future__ import annotations

import asyncio
import logging
import time

from soundmatch.domain.matching.recalculation import PendingStatus, RecalculationScheduler
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)


class RecalculationWorker:
	"""Polls the delayed job queue and runs due drains one at a time."""

	def __init__(
		self,
		*,
		scheduler: RecalculationScheduler | None = None,
		poll_interval: float | None = None,
	) -> None:
		self.scheduler = scheduler or RecalculationScheduler()
		self.poll_interval = settings.match_recalculate_poll_seconds if poll_interval is None else poll_interval
		self._running = False

	async def run_forever(self) -> None:
		self._running = True
		while self._running:
			ran = await self.run_once()
			if not ran:
				await asyncio.sleep(self.poll_interval)

	def stop(self) -> None:
		self._running = False

	async def run_once(self) -> bool:
		start = time.perf_counter()
		try:
			ran = await self.scheduler.run_due()
		except Exception:
			_LOG.exception("recalculation_worker.run_once_failed")
			obs_metrics.record_job_run("recalculate_matches", result="error", duration_seconds=time.perf_counter() - start)
			return False
		if ran:
			obs_metrics.record_job_run("recalculate_matches", result="ok", duration_seconds=time.perf_counter() - start)
		return ran

	async def monitor_once(self) -> PendingStatus | None:
		start = time.perf_counter()
		try:
			status = await self.scheduler.monitor()
		except Exception:
			_LOG.exception("recalculation_worker.monitor_failed")
			obs_metrics.record_job_run("recalculation_monitor", result="error", duration_seconds=time.perf_counter() - start)
			return None
		obs_metrics.record_job_run("recalculation_monitor", result="ok", duration_seconds=time.perf_counter() - start)
		return status


__all__ = ["RecalculationWorker"]
