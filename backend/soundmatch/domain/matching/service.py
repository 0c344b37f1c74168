"""Pair-level operations exposed to callers: scores, candidates, actions."""

from __future__ import annotations

import logging
from dataclasses import replace

from soundmatch.domain import container
from soundmatch.domain.matching.candidates import CandidateFilter
from soundmatch.domain.matching.exceptions import MatchNotFound, SelfMatch
from soundmatch.domain.matching.ledger import MatchLedger, parse_action
from soundmatch.domain.matching.models import Candidate, MatchRecord, MatchStats, MatchStatus, ScoreResult
from soundmatch.domain.matching.recalculation import RecalculationScheduler
from soundmatch.domain.matching.scores import ScoreService
from soundmatch.domain.recommendations.sources import SongRepository
from soundmatch.domain.signals import SongMetadata
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)


class MatchService:
    def __init__(
        self,
        *,
        ledger: MatchLedger | None = None,
        songs: SongRepository | None = None,
        candidates: CandidateFilter | None = None,
        scores: ScoreService | None = None,
        recalculation: RecalculationScheduler | None = None,
    ) -> None:
        self.ledger = ledger or container.get_match_ledger()
        self.songs = songs or container.get_song_repository()
        self.candidates = candidates or CandidateFilter()
        self.scores = scores or ScoreService()
        self.recalculation = recalculation or RecalculationScheduler(candidates=self.candidates, scores=self.scores)

    async def get_match_score(self, user_id: str, other_id: str) -> ScoreResult:
        return await self.scores.get_or_compute(user_id, other_id)

    async def get_candidates(
        self,
        user_id: str,
        *,
        limit: int | None = None,
        max_distance_km: float | None = None,
    ) -> list[Candidate]:
        """Candidates under the caller's stored filters; `max_distance_km` may only narrow them."""
        location = await self.candidates.resolve_location(user_id)
        preferences = await self.candidates.resolve_preferences(user_id)
        if max_distance_km is not None:
            preferences = replace(preferences, max_distance_km=min(preferences.max_distance_km, max_distance_km))
        return await self.candidates.find_candidates(
            user_id,
            location,
            preferences,
            limit=limit or settings.match_interactive_candidate_limit,
        )

    async def record_action(self, user_id: str, other_id: str, action: str) -> MatchRecord:
        if str(user_id) == str(other_id):
            raise SelfMatch()
        parsed = parse_action(action)
        record = await self.ledger.record_action(user_id, other_id, parsed)
        _LOG.info(
            "matches.action",
            extra={"subject": user_id, "other": other_id, "action": parsed.value, "status": record.status.value},
        )
        return record

    async def list_matches(
        self,
        user_id: str,
        *,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[MatchRecord]:
        wanted = MatchStatus(status) if status else None
        return list(await self.ledger.list_matches(user_id, status=wanted, limit=limit, offset=offset))

    async def stats(self, user_id: str) -> MatchStats:
        return await self.ledger.stats(user_id)

    async def get_match(self, user_id: str, other_id: str) -> MatchRecord:
        record = await self.ledger.get_match(user_id, other_id)
        if record is None:
            raise MatchNotFound()
        return record

    async def common_songs(self, user_id: str, other_id: str, *, limit: int = 20) -> list[SongMetadata]:
        if str(user_id) == str(other_id):
            raise SelfMatch()
        return await self.songs.common_songs(user_id, other_id, limit=limit)

    async def request_recalculation(self, user_id: str) -> bool:
        return await self.recalculation.notify_signal_changed(user_id)


__all__ = ["MatchService"]
