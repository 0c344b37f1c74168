"""Listening ingestion: the producer of the signals the matcher consumes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from soundmatch.domain import container
from soundmatch.domain.catalog.service import SongInput, SongService, coerce_song
from soundmatch.domain.listening.repository import ListeningRepository
from soundmatch.domain.listening.schemas import ListenResult
from soundmatch.domain.matching.recalculation import RecalculationScheduler
from soundmatch.domain.recommendations.service import RecommendationComposer
from soundmatch.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

FULL_LISTEN_SECONDS = 30.0
EXPLICIT_PREFERENCE_WEIGHT = 5.0


def listen_weight(duration_seconds: float) -> float:
    """A 30 second listen counts fully; shorter listens count proportionally."""
    return min(max(float(duration_seconds), 0.0) / FULL_LISTEN_SECONDS, 1.0)


class ListeningService:
    def __init__(
        self,
        *,
        repository: ListeningRepository | None = None,
        song_service: SongService | None = None,
        recalculation: RecalculationScheduler | None = None,
        recommendations: RecommendationComposer | None = None,
        clock=None,
    ) -> None:
        self.repository = repository or container.get_listening_repository()
        self.song_service = song_service or SongService()
        self.recalculation = recalculation or RecalculationScheduler()
        self.recommendations = recommendations or RecommendationComposer()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def record_listen(self, user_id: str, song: SongInput, duration_seconds: float = 0.0) -> ListenResult:
        song_id, _ = coerce_song(song)
        metadata = await self.song_service.ensure_song_metadata(song)
        if metadata is None:
            _LOG.info("listening.song_unavailable", extra={"subject": user_id, "song_id": song_id})
            return ListenResult(song_id=song_id, recorded=False)

        await self.repository.record_play(user_id, song_id, self._clock())
        weight = listen_weight(duration_seconds)
        if weight > 0:
            for artist in metadata.artists():
                await self.repository.add_weight(user_id, "artist", artist, weight)
            if metadata.genre:
                await self.repository.add_weight(user_id, "genre", metadata.genre, weight)
            if metadata.language:
                await self.repository.add_weight(user_id, "language", metadata.language, weight)

        obs_metrics.inc_listen_event()
        await self._signals_changed(user_id)
        _LOG.debug("listening.recorded", extra={"subject": user_id, "song_id": song_id, "weight": weight})
        return ListenResult(song_id=song_id, recorded=True, weight=weight)

    async def set_music_preferences(
        self,
        user_id: str,
        *,
        genres: Iterable[str] = (),
        artists: Iterable[str] = (),
        languages: Iterable[str] = (),
    ) -> int:
        """Raise each explicitly selected name to at least the onboarding weight."""
        count = 0
        for dimension, names in (("genre", genres), ("artist", artists), ("language", languages)):
            for name in _clean(names):
                await self.repository.raise_weight_floor(user_id, dimension, name, EXPLICIT_PREFERENCE_WEIGHT)
                count += 1
        if count:
            await self._signals_changed(user_id)
        return count

    async def delete_music_preferences(self, user_id: str) -> int:
        deleted = await self.repository.delete_preferences(user_id)
        await self._signals_changed(user_id)
        return deleted

    async def _signals_changed(self, user_id: str) -> None:
        await self.recalculation.notify_signal_changed(user_id)
        await self.recommendations.invalidate(user_id)


def _clean(names: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for name in names:
        value: Optional[str] = (name or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen


__all__ = ["EXPLICIT_PREFERENCE_WEIGHT", "ListeningService", "listen_weight"]
