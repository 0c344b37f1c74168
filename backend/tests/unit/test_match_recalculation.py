from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from soundmatch.domain.matching import recalculation as recalc_module
from soundmatch.domain.matching.candidates import CandidateFilter
from soundmatch.domain.matching.ledger import InMemoryMatchLedger
from soundmatch.domain.matching.recalculation import (
    ATTEMPTS_KEY,
    CLAIMED_KEY,
    JOB_NAME,
    JOBS_KEY,
    PENDING_KEY,
    RecalculationScheduler,
)
from soundmatch.domain.matching.scores import ScoreService
from soundmatch.domain.matching.similarity import SimilarityScorer
from soundmatch.domain.signals import DatingPreferences, Location
from soundmatch.workers.recalculation import RecalculationWorker


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _scheduler(store, clock, **overrides) -> RecalculationScheduler:
    ledger = InMemoryMatchLedger()
    scores = ScoreService(scorer=SimilarityScorer(store=store, ledger=ledger))
    scheduler = RecalculationScheduler(
        candidates=CandidateFilter(store=store),
        scores=scores,
        clock=clock,
        **overrides,
    )
    scheduler.ledger = ledger  # exposed for assertions
    return scheduler


def _seed_neighbours(store) -> None:
    here = Location(45.50, -73.60)
    store.add_user("alice", gender="female", location=here, preferences=DatingPreferences())
    store.add_user("bob", gender="male", location=Location(45.51, -73.60))
    store.add_user("carol", gender="female", location=Location(45.52, -73.60))
    for user_id, songs in {"alice": ["s1", "s2"], "bob": ["s2"], "carol": ["s1", "s3"]}.items():
        for song_id in songs:
            store.add_play(user_id, song_id)
    for user_id in ("alice", "bob", "carol"):
        store.profiles[user_id].birth_date = date(1994, 1, 1)


@pytest.mark.asyncio
async def test_notifications_in_window_coalesce_into_one_job(memory_store, fake_redis):
    clock = Clock()
    scheduler = _scheduler(memory_store, clock)

    first = await scheduler.notify_signal_changed("alice")
    clock.now += 10
    second = await scheduler.notify_signal_changed("bob")

    assert first is True
    assert second is False
    assert await fake_redis.zcard(JOBS_KEY) == 1
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) == pytest.approx(1_000_000.0 + 60)
    assert await fake_redis.smembers(PENDING_KEY) == {"alice", "bob"}
    assert 0 < await fake_redis.ttl(PENDING_KEY) <= 86400


@pytest.mark.asyncio
async def test_two_notifications_trigger_exactly_one_drain(memory_store, fake_redis, monkeypatch):
    clock = Clock()
    scheduler = _scheduler(memory_store, clock)
    drain = AsyncMock(return_value=recalc_module.DrainReport())
    monkeypatch.setattr(scheduler, "drain", drain)

    await scheduler.notify_signal_changed("alice")
    await scheduler.notify_signal_changed("alice")

    assert await scheduler.run_due() is False
    clock.now += 61
    assert await scheduler.run_due() is True
    assert await scheduler.run_due() is False
    assert drain.await_count == 1


@pytest.mark.asyncio
async def test_drain_scores_candidates_and_clears_user(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    scheduler = _scheduler(memory_store, Clock())
    await scheduler.notify_signal_changed("alice")

    report = await scheduler.drain()

    assert report.cleared == ["alice"]
    assert await fake_redis.smembers(PENDING_KEY) == set()
    assert set(scheduler.ledger.rows) == {("alice", "bob"), ("alice", "carol")}
    assert await fake_redis.get("match:score:alice:bob") is not None


@pytest.mark.asyncio
async def test_user_without_location_stays_pending(memory_store, fake_redis):
    memory_store.add_user("ghost", gender="male")
    scheduler = _scheduler(memory_store, Clock())
    await scheduler.notify_signal_changed("ghost")

    report = await scheduler.drain()

    assert report.pending == ["ghost"]
    assert await fake_redis.smembers(PENDING_KEY) == {"ghost"}


@pytest.mark.asyncio
async def test_candidate_failure_keeps_user_pending(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    scheduler = _scheduler(memory_store, Clock())
    real_refresh = scheduler.scores.refresh

    async def flaky_refresh(user_a, user_b):
        if "carol" in (user_a, user_b):
            raise RuntimeError("store timeout")
        return await real_refresh(user_a, user_b)

    scheduler.scores.refresh = flaky_refresh
    await scheduler.notify_signal_changed("alice")

    report = await scheduler.drain()

    assert report.pending == ["alice"]
    assert report.candidate_failures == 1
    assert ("alice", "bob") in scheduler.ledger.rows
    assert await fake_redis.sismember(PENDING_KEY, "alice")


@pytest.mark.asyncio
async def test_drain_processes_users_in_sorted_batches(memory_store, fake_redis, monkeypatch):
    scheduler = _scheduler(memory_store, Clock(), batch_size=2)
    seen: list[str] = []

    async def fake_process(user_id, report):
        seen.append(user_id)
        return True

    monkeypatch.setattr(scheduler, "_process_user", fake_process)
    await fake_redis.sadd(PENDING_KEY, "d", "b", "a", "c", "e")

    report = await scheduler.drain()

    assert report.cleared == ["a", "b", "c", "d", "e"]
    assert seen == ["a", "b", "c", "d", "e"]


@pytest.mark.asyncio
async def test_failed_drain_is_retried_with_backoff_then_dropped(memory_store, fake_redis, monkeypatch):
    clock = Clock()
    scheduler = _scheduler(memory_store, clock, backoff_seconds=1.0, max_attempts=3)
    monkeypatch.setattr(scheduler, "drain", AsyncMock(side_effect=ConnectionError("redis away")))

    assert await scheduler.execute() is None
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) == pytest.approx(clock.now + 1.0)
    await fake_redis.zrem(JOBS_KEY, JOB_NAME)

    await scheduler.execute()
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) == pytest.approx(clock.now + 2.0)
    await fake_redis.zrem(JOBS_KEY, JOB_NAME)

    await scheduler.execute()
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) is None
    assert await fake_redis.hget(ATTEMPTS_KEY, JOB_NAME) is None


@pytest.mark.asyncio
async def test_repeated_drains_only_keep_unresolved_users(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    scheduler = _scheduler(memory_store, Clock())
    await fake_redis.sadd(PENDING_KEY, "alice", "ghost")
    memory_store.add_user("ghost")

    await scheduler.execute()
    await scheduler.execute()

    assert await fake_redis.smembers(PENDING_KEY) == {"ghost"}


@pytest.mark.asyncio
async def test_notify_swallows_redis_errors(memory_store):
    broken = MagicMock()
    broken.pipeline.side_effect = ConnectionError("redis down")
    scheduler = RecalculationScheduler(candidates=CandidateFilter(store=memory_store), scores=AsyncMock(), redis=broken)

    assert await scheduler.notify_signal_changed("alice") is False


@pytest.mark.asyncio
async def test_monitor_flags_stuck_set(memory_store, fake_redis):
    scheduler = _scheduler(memory_store, Clock())
    await fake_redis.sadd(PENDING_KEY, "alice")
    await fake_redis.expire(PENDING_KEY, 120)

    status = await scheduler.monitor()

    assert status.size == 1
    assert status.stuck is True


@pytest.mark.asyncio
async def test_worker_run_once_logs_and_survives_errors(memory_store):
    scheduler = AsyncMock()
    scheduler.run_due.side_effect = RuntimeError("boom")
    worker = RecalculationWorker(scheduler=scheduler, poll_interval=0)

    assert await worker.run_once() is False


@pytest.mark.asyncio
async def test_worker_runs_due_job(memory_store, fake_redis):
    clock = Clock()
    scheduler = _scheduler(memory_store, clock, delay_seconds=0)
    worker = RecalculationWorker(scheduler=scheduler, poll_interval=0)
    _seed_neighbours(memory_store)
    await scheduler.notify_signal_changed("alice")

    assert await worker.run_once() is True
    assert await fake_redis.zcard(JOBS_KEY) == 0
    assert await fake_redis.scard(PENDING_KEY) == 0


@pytest.mark.asyncio
async def test_signal_change_during_own_rescore_keeps_user_pending(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    clock = Clock()
    scheduler = _scheduler(memory_store, clock)
    real_refresh = scheduler.scores.refresh

    async def refresh_while_listening(user_a, user_b):
        await scheduler.notify_signal_changed("alice")
        return await real_refresh(user_a, user_b)

    scheduler.scores.refresh = refresh_while_listening
    await scheduler.notify_signal_changed("alice")
    clock.now += 61

    assert await scheduler.run_due() is True

    assert await fake_redis.smembers(PENDING_KEY) == {"alice"}
    assert await fake_redis.scard(CLAIMED_KEY) == 0
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) == pytest.approx(clock.now + 60)


@pytest.mark.asyncio
async def test_users_left_pending_get_a_follow_up_job(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    clock = Clock()
    scheduler = _scheduler(memory_store, clock)
    scheduler.scores.refresh = AsyncMock(side_effect=RuntimeError("store timeout"))
    await scheduler.notify_signal_changed("alice")
    clock.now += 61

    assert await scheduler.run_due() is True

    assert await fake_redis.smembers(PENDING_KEY) == {"alice"}
    assert await fake_redis.zscore(JOBS_KEY, JOB_NAME) == pytest.approx(clock.now + 60)
    assert await fake_redis.ttl(PENDING_KEY) > 0


@pytest.mark.asyncio
async def test_claims_from_an_interrupted_drain_are_restored(memory_store, fake_redis):
    _seed_neighbours(memory_store)
    scheduler = _scheduler(memory_store, Clock())
    await fake_redis.sadd(CLAIMED_KEY, "alice")

    report = await scheduler.drain()

    assert report.cleared == ["alice"]
    assert await fake_redis.scard(CLAIMED_KEY) == 0
    assert await fake_redis.scard(PENDING_KEY) == 0
