"""Operations endpoints providing health checks, metrics and recalculation controls."""

from __future__ import annotations

import time
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from soundmatch.domain.matching.recalculation import RecalculationScheduler
from soundmatch.obs import health
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

router = APIRouter(prefix="", tags=["ops"])


def _resolve_token(x_admin_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
	if x_admin_token:
		return x_admin_token
	if authorization and authorization.lower().startswith("bearer "):
		return authorization.split(" ", 1)[1]
	return None


async def require_admin(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	token = settings.obs_admin_token
	if not token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	provided = _resolve_token(X_Admin_Token, authorization)
	if provided != token:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


async def require_metrics_access(
	X_Admin_Token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> None:
	if settings.obs_metrics_public:
		return
	await require_admin(X_Admin_Token=X_Admin_Token, authorization=authorization)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> Response:
	status_code, payload = await health.readiness()
	return JSONResponse(content=payload, status_code=status_code)


@router.get("/metrics")
async def prometheus_metrics(_: None = Depends(require_metrics_access)) -> Response:
	payload = generate_latest()
	return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


@router.get("/ops/recalculation")
async def recalculation_status(_: None = Depends(require_admin)) -> dict[str, Any]:
	pending = await RecalculationScheduler().monitor()
	return {"pending": pending.size, "ttl_seconds": pending.ttl_seconds, "stuck": pending.stuck}


@router.post("/ops/recalculation/drain")
async def trigger_drain(_: None = Depends(require_admin)) -> dict[str, Any]:
	start = time.perf_counter()
	report = await RecalculationScheduler().execute()
	if report is None:
		obs_metrics.record_job_run("recalculate_matches", result="error", duration_seconds=time.perf_counter() - start)
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="drain_failed")
	obs_metrics.record_job_run("recalculate_matches", result="ok", duration_seconds=time.perf_counter() - start)
	return {
		"status": "ok",
		"cleared": len(report.cleared),
		"pending": len(report.pending),
		"candidate_failures": report.candidate_failures,
	}
