import pytest

from soundmatch.domain.matching.recalculation import PENDING_KEY
from soundmatch.settings import settings


@pytest.mark.asyncio
async def test_liveness(api_client):
	response = await api_client.get("/health/live")

	assert response.status_code == 200
	assert response.json() == {"status": "ok"}
	assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_metrics_require_token_unless_public(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "secret")

	denied = await api_client.get("/metrics")
	allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "secret"})

	assert denied.status_code == 403
	assert allowed.status_code == 200
	assert "# HELP soundmatch_recalc_pending_users" in allowed.text


@pytest.mark.asyncio
async def test_recalculation_status_reports_pending(api_client, monkeypatch, fake_redis):
	monkeypatch.setattr(settings, "obs_admin_token", "secret")
	await fake_redis.sadd(PENDING_KEY, "u1", "u2")
	await fake_redis.expire(PENDING_KEY, 600)

	response = await api_client.get("/ops/recalculation", headers={"Authorization": "Bearer secret"})

	assert response.status_code == 200
	body = response.json()
	assert body["pending"] == 2
	assert body["stuck"] is True
