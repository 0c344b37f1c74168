"""Debounced, batched recomputation of match scores after signal changes.

Signal producers only call `notify_signal_changed`. That marks the user pending
in a Redis set and schedules a single delayed drain job; further notifications
inside the delay window join the same job. A drain walks the pending set in
batches, rescoring each user against their current candidates, and removes a
user only once every candidate scored. Users still pending after a drain
get a follow-up job; failed drains are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from soundmatch.domain.matching.candidates import CandidateFilter
from soundmatch.domain.matching.exceptions import CandidateScoringFailed, LocationMissing
from soundmatch.domain.matching.scores import ScoreService
from soundmatch.infra.redis import redis_client
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)

PENDING_KEY = "match:recalculate"
CLAIMED_KEY = "match:recalculate:claimed"
JOBS_KEY = "match:jobs:delayed"
ATTEMPTS_KEY = "match:jobs:attempts"
JOB_NAME = "recalculate-matches"


@dataclass(slots=True)
class DrainReport:
    cleared: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    candidate_failures: int = 0

    @property
    def processed(self) -> int:
        return len(self.cleared) + len(self.pending)


@dataclass(slots=True, frozen=True)
class PendingStatus:
    size: int
    ttl_seconds: int
    stuck: bool


def _batches(items: Sequence[str], size: int) -> list[Sequence[str]]:
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


class RecalculationScheduler:
    def __init__(
        self,
        *,
        candidates: CandidateFilter | None = None,
        scores: ScoreService | None = None,
        redis=None,
        clock: Callable[[], float] = time.time,
        delay_seconds: float | None = None,
        batch_size: int | None = None,
        candidate_limit: int | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.candidates = candidates or CandidateFilter()
        self.scores = scores or ScoreService()
        self.redis = redis or redis_client
        self.clock = clock
        self.delay_seconds = settings.match_recalculate_delay_seconds if delay_seconds is None else delay_seconds
        self.batch_size = batch_size or settings.match_recalculate_batch_size
        self.candidate_limit = candidate_limit or settings.match_recalculate_candidate_limit
        self.max_attempts = max_attempts or settings.match_recalculate_max_attempts
        self.backoff_seconds = settings.match_recalculate_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._semaphore = asyncio.Semaphore(max(1, settings.match_recalculate_concurrency))

    async def notify_signal_changed(self, user_id: str) -> bool:
        """Mark `user_id` pending. True when this call scheduled a new drain.

        Never raises: a lost notification is logged and picked up by the next one.
        """
        try:
            pipe = self.redis.pipeline()
            pipe.sadd(PENDING_KEY, user_id)
            pipe.expire(PENDING_KEY, settings.match_recalculate_ttl_seconds)
            pipe.zadd(JOBS_KEY, {JOB_NAME: self.clock() + self.delay_seconds}, nx=True)
            _, _, scheduled = await pipe.execute()
        except Exception:
            obs_metrics.inc_recalc_notification("failed")
            _LOG.warning("recalculation.notify_failed", extra={"subject": user_id}, exc_info=True)
            return False
        result = "scheduled" if scheduled else "coalesced"
        obs_metrics.inc_recalc_notification(result)
        _LOG.debug("recalculation.notified", extra={"subject": user_id, "result": result})
        return bool(scheduled)

    async def due_job(self) -> str | None:
        jobs = await self.redis.zrangebyscore(JOBS_KEY, "-inf", self.clock(), start=0, num=1)
        return str(jobs[0]) if jobs else None

    async def run_due(self) -> bool:
        """Claim and execute a due drain job. False when nothing was due or claimed."""
        job = await self.due_job()
        if job is None:
            return False
        # Only the caller whose ZREM removes the member owns the run
        if not await self.redis.zrem(JOBS_KEY, job):
            return False
        await self.execute(job)
        return True

    async def execute(self, job: str = JOB_NAME) -> DrainReport | None:
        start = time.perf_counter()
        try:
            report = await self.drain()
        except Exception:
            duration = time.perf_counter() - start
            obs_metrics.record_recalc_drain("error", duration_seconds=duration)
            await self._retry(job)
            return None
        duration = time.perf_counter() - start
        await self._reset_attempts(job)
        obs_metrics.record_recalc_drain("ok", duration_seconds=duration)
        _LOG.info(
            "recalculation.drain",
            extra={
                "cleared": len(report.cleared),
                "pending": len(report.pending),
                "candidate_failures": report.candidate_failures,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return report

    async def _retry(self, job: str) -> None:
        try:
            attempt = int(await self.redis.hincrby(ATTEMPTS_KEY, job, 1))
            if attempt >= self.max_attempts:
                await self.redis.hdel(ATTEMPTS_KEY, job)
                obs_metrics.inc_recalc_retry("exhausted")
                _LOG.error("recalculation.drain_failed", extra={"job": job, "attempts": attempt}, exc_info=True)
                return
            delay = self.backoff_seconds * (2 ** (attempt - 1))
            await self.redis.zadd(JOBS_KEY, {job: self.clock() + delay}, nx=True)
            obs_metrics.inc_recalc_retry("scheduled")
            _LOG.warning(
                "recalculation.drain_retry",
                extra={"job": job, "attempt": attempt, "delay_seconds": delay},
                exc_info=True,
            )
        except Exception:
            obs_metrics.inc_recalc_retry("unavailable")
            _LOG.exception("recalculation.retry_unavailable", extra={"job": job})

    async def _reset_attempts(self, job: str) -> None:
        try:
            await self.redis.hdel(ATTEMPTS_KEY, job)
        except Exception:
            _LOG.warning("recalculation.attempts_reset_failed", extra={"job": job}, exc_info=True)

    async def drain(self) -> DrainReport:
        """Rescore every pending user. Raises only when the pending set is unreadable.

        Each user is moved into the claimed set while it is rescored, so a
        notification arriving mid-drain lands back in the pending set and
        survives the clear. Users left pending get a follow-up job.
        """
        await self._restore_claimed()
        members = await self.redis.smembers(PENDING_KEY)
        # Sets keep no enqueue order; users are drained in sorted id order
        users = sorted(str(member) for member in members)
        report = DrainReport()
        for batch in _batches(users, self.batch_size):
            outcomes = await asyncio.gather(*(self._drain_user(user_id, report) for user_id in batch))
            for user_id, cleared in zip(batch, outcomes):
                (report.cleared if cleared else report.pending).append(user_id)
        if report.pending:
            await self._schedule_follow_up(len(report.pending))
        return report

    async def _restore_claimed(self) -> None:
        # Claims left behind by an interrupted drain go back to the pending set
        leftovers = await self.redis.smembers(CLAIMED_KEY)
        if not leftovers:
            return
        pipe = self.redis.pipeline()
        pipe.sadd(PENDING_KEY, *leftovers)
        pipe.expire(PENDING_KEY, settings.match_recalculate_ttl_seconds)
        pipe.delete(CLAIMED_KEY)
        await pipe.execute()
        _LOG.info("recalculation.claims_restored", extra={"users": len(leftovers)})

    async def _drain_user(self, user_id: str, report: DrainReport) -> bool:
        pipe = self.redis.pipeline()
        pipe.smove(PENDING_KEY, CLAIMED_KEY, user_id)
        pipe.expire(CLAIMED_KEY, settings.match_recalculate_ttl_seconds)
        claimed, _ = await pipe.execute()
        if not claimed:
            # Already cleared by a concurrent drain
            return True
        cleared = await self._process_user(user_id, report)
        try:
            if cleared:
                await self.redis.srem(CLAIMED_KEY, user_id)
            else:
                await self._requeue(user_id)
        except Exception:
            _LOG.warning("recalculation.release_failed", extra={"subject": user_id}, exc_info=True)
        return cleared

    async def _requeue(self, user_id: str) -> None:
        pipe = self.redis.pipeline()
        pipe.smove(CLAIMED_KEY, PENDING_KEY, user_id)
        pipe.ttl(PENDING_KEY)
        _, ttl = await pipe.execute()
        if int(ttl) < 0:
            await self.redis.expire(PENDING_KEY, settings.match_recalculate_ttl_seconds)

    async def _schedule_follow_up(self, pending: int) -> None:
        try:
            scheduled = await self.redis.zadd(JOBS_KEY, {JOB_NAME: self.clock() + self.delay_seconds}, nx=True)
        except Exception:
            _LOG.warning("recalculation.follow_up_failed", extra={"pending": pending}, exc_info=True)
            return
        _LOG.info("recalculation.follow_up", extra={"pending": pending, "scheduled": bool(scheduled)})

    async def _process_user(self, user_id: str, report: DrainReport) -> bool:
        try:
            location = await self.candidates.resolve_location(user_id)
            preferences = await self.candidates.resolve_preferences(user_id)
            candidates = await self.candidates.find_candidates(
                user_id, location, preferences, limit=self.candidate_limit
            )
        except LocationMissing:
            obs_metrics.inc_recalc_user("no_location")
            _LOG.info("recalculation.location_missing", extra={"subject": user_id})
            return False
        except Exception:
            obs_metrics.inc_recalc_user("error")
            _LOG.warning("recalculation.candidates_failed", extra={"subject": user_id}, exc_info=True)
            return False

        results = await asyncio.gather(*(self._score_candidate(user_id, c.user_id) for c in candidates))
        failures = sum(1 for ok in results if not ok)
        report.candidate_failures += failures
        if failures:
            obs_metrics.inc_recalc_user("pending")
            return False
        obs_metrics.inc_recalc_user("cleared")
        return True

    async def _score_candidate(self, user_id: str, candidate_id: str) -> bool:
        async with self._semaphore:
            try:
                await self.scores.refresh(user_id, candidate_id)
            except Exception as exc:
                failure = CandidateScoringFailed(user_id, candidate_id)
                obs_metrics.inc_recalc_candidate_failure()
                _LOG.warning(
                    "recalculation.candidate_failed",
                    extra={"subject": user_id, "candidate": candidate_id, "reason": failure.reason, "error": str(exc)},
                )
                return False
        return True

    async def pending_status(self) -> PendingStatus:
        size = int(await self.redis.scard(PENDING_KEY))
        ttl = int(await self.redis.ttl(PENDING_KEY))
        stuck = size > 0 and 0 <= ttl < settings.match_recalculate_stuck_ttl_seconds
        return PendingStatus(size=size, ttl_seconds=ttl, stuck=stuck)

    async def monitor(self) -> PendingStatus:
        """Publish pending-set gauges and warn when users are close to being dropped."""
        status = await self.pending_status()
        obs_metrics.set_recalc_pending(status.size, status.ttl_seconds, stuck=status.stuck)
        if status.stuck:
            _LOG.warning(
                "recalculation.stuck",
                extra={"pending": status.size, "ttl_seconds": status.ttl_seconds},
            )
        return status


__all__ = [
    "ATTEMPTS_KEY",
    "CLAIMED_KEY",
    "DrainReport",
    "JOBS_KEY",
    "JOB_NAME",
    "PENDING_KEY",
    "PendingStatus",
    "RecalculationScheduler",
]
