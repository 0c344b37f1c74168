from datetime import date

import pytest

from soundmatch.domain.signals import Location, SongMetadata

ALICE = {"X-User-Id": "alice"}


def _seed(store) -> None:
	born = date(1995, 3, 1)
	store.add_user("alice", birth_date=born, location=Location(45.50, -73.60))
	store.add_user("bob", birth_date=born, location=Location(45.545, -73.60))
	store.add_user("carol", birth_date=born, location=Location(46.50, -73.60))
	for song_id, genre in (("s1", "rock"), ("s2", "rock"), ("s3", "jazz")):
		store.add_song(SongMetadata(song_id=song_id, name=song_id.upper(), genre=genre, primary_artists="Band"))
	for song_id in ("s1", "s2"):
		store.add_play("alice", song_id)
	for song_id in ("s2", "s3"):
		store.add_play("bob", song_id)


@pytest.mark.asyncio
async def test_requests_without_user_header_are_rejected(api_client):
	response = await api_client.get("/matches/score/bob")

	assert response.status_code == 401
	assert response.json()["detail"] == "missing_user"


@pytest.mark.asyncio
async def test_score_is_cached_after_first_request(api_client, memory_store):
	_seed(memory_store)

	first = await api_client.get("/matches/score/bob", headers=ALICE)
	second = await api_client.get("/matches/score/alice", headers={"X-User-Id": "bob"})

	assert first.status_code == 200
	body = first.json()
	assert 0.0 <= body["score"] <= 100.0
	assert body["cached"] is False
	assert second.json()["cached"] is True
	assert second.json()["score"] == body["score"]


@pytest.mark.asyncio
async def test_score_against_self_is_a_bad_request(api_client):
	response = await api_client.get("/matches/score/alice", headers=ALICE)

	assert response.status_code == 400
	assert response.json()["detail"] == "self_match"


@pytest.mark.asyncio
async def test_candidates_are_limited_to_the_search_radius(api_client, memory_store):
	_seed(memory_store)

	response = await api_client.get("/matches/candidates", headers=ALICE)

	assert response.status_code == 200
	items = response.json()["items"]
	assert [item["user_id"] for item in items] == ["bob"]
	assert items[0]["distance_km"] == pytest.approx(5.0, abs=0.1)


@pytest.mark.asyncio
async def test_candidates_radius_can_only_narrow(api_client, memory_store):
	_seed(memory_store)

	response = await api_client.get("/matches/candidates", params={"max_distance_km": 2}, headers=ALICE)

	assert response.json()["items"] == []


@pytest.mark.asyncio
async def test_candidates_without_location_explain_the_problem(api_client, memory_store):
	memory_store.add_user("alice")

	response = await api_client.get(
		"/matches/candidates",
		headers={**ALICE, "X-Request-Id": "req-123"},
	)

	assert response.status_code == 400
	body = response.json()
	assert body["detail"] == "location_missing"
	assert body["message"] == "Share your location to see people near you."
	assert body["request_id"] == "req-123"


@pytest.mark.asyncio
async def test_action_on_unscored_pair_is_not_found(api_client):
	response = await api_client.post("/matches/bob/action", json={"action": "liked"}, headers=ALICE)

	assert response.status_code == 404
	assert response.json()["detail"] == "match_not_found"


@pytest.mark.asyncio
async def test_mutual_likes_become_a_match(api_client, memory_store):
	_seed(memory_store)
	await api_client.get("/matches/score/bob", headers=ALICE)

	first = await api_client.post("/matches/bob/action", json={"action": "liked"}, headers=ALICE)
	second = await api_client.post("/matches/alice/action", json={"action": "liked"}, headers={"X-User-Id": "bob"})
	detail = await api_client.get("/matches/bob", headers=ALICE)

	assert first.json()["status"] == "liked-by-one"
	assert second.json()["status"] == "matched"
	assert detail.json()["user_id_1"] == "alice"
	assert detail.json()["status"] == "matched"


@pytest.mark.asyncio
async def test_unknown_action_is_rejected(api_client):
	response = await api_client.post("/matches/bob/action", json={"action": "superlike"}, headers=ALICE)

	assert response.status_code == 422
	assert response.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_common_songs_lists_shared_history(api_client, memory_store):
	_seed(memory_store)

	response = await api_client.get("/matches/common/bob", headers=ALICE)

	assert response.status_code == 200
	assert [song["song_id"] for song in response.json()["songs"]] == ["s2"]


@pytest.mark.asyncio
async def test_recalculate_request_is_accepted_once_per_window(api_client):
	first = await api_client.post("/matches/recalculate", headers=ALICE)
	second = await api_client.post("/matches/recalculate", headers=ALICE)

	assert first.status_code == 202
	assert first.json() == {"scheduled": True}
	assert second.json() == {"scheduled": False}


@pytest.mark.asyncio
async def test_match_list_filters_by_status(api_client, memory_store):
	_seed(memory_store)
	await api_client.get("/matches/score/bob", headers=ALICE)
	await api_client.post("/matches/bob/action", json={"action": "liked"}, headers=ALICE)

	everything = await api_client.get("/matches", headers=ALICE)
	matched = await api_client.get("/matches", params={"status": "matched"}, headers=ALICE)

	assert [item["status"] for item in everything.json()["items"]] == ["liked-by-one"]
	assert matched.json()["items"] == []


@pytest.mark.asyncio
async def test_match_stats_summarise_the_callers_pairs(api_client, memory_store):
	_seed(memory_store)
	await api_client.get("/matches/score/bob", headers=ALICE)
	await api_client.get("/matches/score/carol", headers=ALICE)
	await api_client.post("/matches/bob/action", json={"action": "liked"}, headers=ALICE)
	await api_client.post("/matches/alice/action", json={"action": "liked"}, headers={"X-User-Id": "bob"})
	await api_client.post("/matches/carol/action", json={"action": "liked"}, headers=ALICE)
	await api_client.post("/matches/alice/action", json={"action": "passed"}, headers={"X-User-Id": "carol"})

	response = await api_client.get("/matches/stats", headers=ALICE)

	assert response.status_code == 200
	assert response.json() == {"matched": 1, "pending": 0, "liked": 2, "passed": 0, "match_rate": 50.0}
