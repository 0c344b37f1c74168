"""FastAPI application entry point for the SoundMatch compatibility engine."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from soundmatch import obs
from soundmatch.api import listening, matching, ops, recommendations
from soundmatch.api.errors import install_error_handlers
from soundmatch.domain import container
from soundmatch.infra import postgres
from soundmatch.infra.catalog import close_catalog_client
from soundmatch.infra.scheduler import JobScheduler
from soundmatch.settings import settings
from soundmatch.workers.recalculation import RecalculationWorker


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		container.configure_postgres(pool)
	worker_tasks: list[asyncio.Task] = []
	worker: RecalculationWorker | None = None
	scheduler: JobScheduler | None = None
	if settings.match_workers_enabled:
		worker = RecalculationWorker()
		scheduler = JobScheduler()
		worker_tasks.append(
			asyncio.create_task(worker.run_forever(), name="match-recalculation")
		)
		scheduler.start()
		scheduler.schedule_interval(
			"match-recalculation-monitor",
			worker.monitor_once,
			seconds=settings.match_monitor_interval_seconds,
		)
		app.state.match_scheduler = scheduler
	app.state.match_worker = worker
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		if worker is not None:
			worker.stop()
		if worker_tasks:
			for task in worker_tasks:
				task.cancel()
			await asyncio.gather(*worker_tasks, return_exceptions=True)
		await close_catalog_client()
		await postgres.close_pool()


app = FastAPI(title="SoundMatch Compatibility Engine", lifespan=lifespan)
install_error_handlers(app)
obs.init(app)

app.include_router(matching.router)
app.include_router(recommendations.router)
app.include_router(listening.router)
app.include_router(ops.router)
