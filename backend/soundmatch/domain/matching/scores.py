"""Read-through score cache in front of the similarity scorer."""

from __future__ import annotations

import logging

from soundmatch.domain.matching.exceptions import SelfMatch
from soundmatch.domain.matching.models import ScoreResult, canonical_pair
from soundmatch.domain.matching.similarity import SimilarityScorer
from soundmatch.infra.redis import redis_client
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)

SCORE_KEY = "match:score:{low}:{high}"


def score_key(user_a: str, user_b: str) -> str:
    low, high = canonical_pair(user_a, user_b)
    return SCORE_KEY.format(low=low, high=high)


class ScoreService:
    """Cache hits skip the store entirely; misses compute, persist and cache."""

    def __init__(self, *, scorer: SimilarityScorer | None = None, redis=None) -> None:
        self.scorer = scorer or SimilarityScorer()
        self.redis = redis or redis_client

    async def _read(self, key: str) -> float | None:
        try:
            raw = await self.redis.get(key)
        except Exception:
            obs_metrics.inc_score_cache("unavailable")
            _LOG.warning("scores.cache_unavailable", extra={"key": key}, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            _LOG.warning("scores.cache_corrupt", extra={"key": key})
            return None

    async def _write(self, key: str, score: float) -> None:
        try:
            await self.redis.set(key, repr(score), ex=settings.match_score_cache_ttl_seconds)
        except Exception:
            obs_metrics.inc_score_cache("unavailable")
            _LOG.warning("scores.cache_write_failed", extra={"key": key}, exc_info=True)

    async def get_or_compute(self, user_a: str, user_b: str) -> ScoreResult:
        if str(user_a) == str(user_b):
            raise SelfMatch()
        key = score_key(user_a, user_b)
        cached = await self._read(key)
        if cached is not None:
            obs_metrics.inc_score_cache("hit")
            return ScoreResult(score=cached, cached=True)
        obs_metrics.inc_score_cache("miss")
        score = await self.scorer.score(user_a, user_b)
        await self._write(key, score)
        return ScoreResult(score=score, cached=False)

    async def refresh(self, user_a: str, user_b: str) -> float:
        """Recompute regardless of the cache and write the fresh value through."""
        score = await self.scorer.score(user_a, user_b)
        await self._write(score_key(user_a, user_b), score)
        return score


__all__ = ["SCORE_KEY", "ScoreService", "score_key"]
