import pytest

from soundmatch.domain.matching.recalculation import PENDING_KEY


@pytest.mark.asyncio
async def test_listen_event_with_song_payload(api_client, memory_store, fake_redis):
	payload = {
		"song": {"id": "42", "song": "So What", "primary_artists": "Miles Davis", "genre": "jazz"},
		"duration_seconds": 45,
	}

	response = await api_client.post("/listening/events", json=payload, headers={"X-User-Id": "u1"})

	assert response.status_code == 202
	assert response.json() == {"song_id": "42", "recorded": True, "weight": 1.0}
	assert "42" in memory_store.history["u1"]
	assert await fake_redis.sismember(PENDING_KEY, "u1")


@pytest.mark.asyncio
async def test_listen_event_needs_a_song(api_client):
	response = await api_client.post("/listening/events", json={"duration_seconds": 10}, headers={"X-User-Id": "u1"})

	assert response.status_code == 422


@pytest.mark.asyncio
async def test_listen_event_with_unknown_song_id_is_not_recorded(api_client, memory_store):
	response = await api_client.post("/listening/events", json={"song_id": "nope"}, headers={"X-User-Id": "u1"})

	assert response.status_code == 202
	assert response.json()["recorded"] is False


@pytest.mark.asyncio
async def test_preferences_round_trip(api_client, memory_store):
	headers = {"X-User-Id": "u1"}

	updated = await api_client.put(
		"/listening/preferences",
		json={"genres": ["rock"], "artists": ["Radiohead"], "languages": []},
		headers=headers,
	)
	deleted = await api_client.delete("/listening/preferences", headers=headers)

	assert updated.json() == {"updated": 2}
	assert deleted.json() == {"deleted": 2}
