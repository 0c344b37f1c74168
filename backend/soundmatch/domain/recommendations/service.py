"""Ranked song and user recommendations with layered fallbacks."""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Iterable, Optional, Sequence, TypeVar

from soundmatch.domain import container
from soundmatch.domain.catalog.service import SongService
from soundmatch.domain.matching.candidates import CandidateFilter
from soundmatch.domain.matching.exceptions import PreferencesMissing
from soundmatch.domain.matching.ledger import MatchLedger
from soundmatch.domain.matching.scores import ScoreService
from soundmatch.domain.recommendations.schemas import (
    RecommendationType,
    SongRecommendation,
    UserRecommendation,
)
from soundmatch.domain.recommendations.sources import SongRepository
from soundmatch.domain.signals import DatingPreferences, PreferenceWeights, SignalStore, SongMetadata
from soundmatch.infra.catalog import CatalogClient, get_catalog_client
from soundmatch.infra.redis import redis_client
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)

SONGS_KEY = "recommendations:songs:{user_id}"
USERS_KEY = "recommendations:users:{user_id}"

MUSIC_WEIGHT = 0.8
PROXIMITY_WEIGHT = 0.2
TOP_ARTISTS = 10
TOP_GENRES = 5

T = TypeVar("T")


def round_robin(groups: Sequence[Sequence[SongMetadata]]) -> list[SongMetadata]:
    """Interleave per-genre lists: first of each, then second of each, and so on."""
    merged: list[SongMetadata] = []
    depth = max((len(group) for group in groups), default=0)
    for index in range(depth):
        for group in groups:
            if index < len(group):
                merged.append(group[index])
    return merged


def _take(songs: Iterable[SongMetadata], seen: set[str], count: int) -> list[SongMetadata]:
    taken: list[SongMetadata] = []
    for song in songs:
        if len(taken) >= count:
            break
        if song.song_id in seen:
            continue
        seen.add(song.song_id)
        taken.append(song)
    return taken


def adjusted_score(music_score: float, distance_km: float, max_distance_km: float) -> float:
    proximity = max(0.0, 1.0 - distance_km / max_distance_km) if max_distance_km > 0 else 0.0
    return round(MUSIC_WEIGHT * music_score + PROXIMITY_WEIGHT * 100.0 * proximity, 1)


class RecommendationComposer:
    def __init__(
        self,
        *,
        store: SignalStore | None = None,
        songs: SongRepository | None = None,
        ledger: MatchLedger | None = None,
        candidates: CandidateFilter | None = None,
        scores: ScoreService | None = None,
        song_service: SongService | None = None,
        catalog: CatalogClient | None = None,
        redis=None,
    ) -> None:
        self.store = store or container.get_signal_store()
        self.songs = songs or container.get_song_repository()
        self.ledger = ledger or container.get_match_ledger()
        self.candidates = candidates or CandidateFilter(store=self.store)
        self.scores = scores or ScoreService()
        self.song_service = song_service or SongService(songs=self.songs, store=self.store, catalog=catalog)
        self._catalog = catalog
        self.redis = redis or redis_client

    @property
    def catalog(self) -> CatalogClient:
        return self._catalog or get_catalog_client()

    # --- songs ---

    async def is_new_user(self, user_id: str) -> bool:
        try:
            count = await self.store.listening_event_count(user_id)
        except Exception:
            _LOG.warning("recommendations.history_count_failed", extra={"subject": user_id}, exc_info=True)
            return True
        return count < settings.new_user_history_threshold

    async def recommend_songs(self, user_id: str, limit: int = 20) -> list[SongRecommendation]:
        limit = max(1, limit)
        key = SONGS_KEY.format(user_id=user_id)
        cached = await self._read_cache(key, "songs")
        if cached is not None:
            return [SongRecommendation.model_validate(item) for item in cached[:limit]]

        new_user = await self.is_new_user(user_id)
        if new_user:
            items = await self._new_user_songs(user_id, limit)
            ttl = settings.recommendation_songs_new_ttl_seconds
        else:
            items = await self._established_songs(user_id, limit)
            ttl = settings.recommendation_songs_ttl_seconds

        for kind in {item.type for item in items}:
            obs_metrics.inc_recommendation_items("songs", kind, sum(1 for item in items if item.type == kind))
        await self._write_cache(key, [item.model_dump() for item in items], ttl)
        _LOG.info(
            "recommendations.songs",
            extra={"subject": user_id, "new_user": new_user, "count": len(items)},
        )
        return items

    async def _new_user_songs(self, user_id: str, limit: int) -> list[SongRecommendation]:
        weights = await self._safely("preference_weights", self.store.preference_weights(user_id), PreferenceWeights())
        genres = weights.top_genres()
        seen: set[str] = set()
        items: list[SongRecommendation] = []

        if genres:
            groups = []
            for genre in genres:
                groups.append(await self._safely("genre", self.songs.by_genre(genre, limit=limit), []))
            genre_songs = _take(round_robin(groups), seen, limit)
            if len(genre_songs) < limit / 2:
                catalog_songs = await self._catalog_songs("catalog_genre", self.catalog.genre_songs(genres, limit=limit))
                genre_songs += _take(catalog_songs, seen, limit - len(genre_songs))
            items = self._tag(genre_songs, "genre-based")
            if len(items) >= limit / 2:
                return items

        remaining = limit - len(items)
        popular = await self._safely("popular", self.songs.popular(limit=remaining, exclude=seen), [])
        items += self._tag(_take(popular, seen, remaining), "popular")

        remaining = limit - len(items)
        if remaining > 0:
            trending = await self._catalog_songs("trending", self.catalog.trending(limit=limit))
            items += self._tag(_take(trending, seen, remaining), "trending")

        remaining = limit - len(items)
        if remaining > 0:
            rand = await self._safely("random", self.songs.random(limit=remaining, exclude=seen), [])
            items += self._tag(_take(rand, seen, remaining), "random")
        return items

    async def _established_songs(self, user_id: str, limit: int) -> list[SongRecommendation]:
        half = max(1, limit // 2)
        weights = await self._safely("preference_weights", self.store.preference_weights(user_id), PreferenceWeights())
        heard = await self._safely("heard", self.songs.heard_song_ids(user_id), set())
        seen: set[str] = set(heard)

        content = await self._safely(
            "content",
            self.songs.by_preferences(
                user_id,
                artists=weights.artists[:TOP_ARTISTS],
                genres=weights.genres[:TOP_GENRES],
                limit=half,
            ),
            [],
        )
        items = self._tag(_take(content, seen, half), "content-based")

        similar = await self._safely(
            "similar_users",
            self.ledger.top_similar_users(
                user_id,
                min_score=settings.match_min_score,
                limit=settings.recommendation_similar_users_limit,
            ),
            [],
        )
        if similar:
            other_ids = [other_id for other_id, _ in similar]
            collaborative = await self._safely(
                "collaborative",
                self.songs.heard_by(other_ids, exclude_user=user_id, limit=limit),
                [],
            )
            items += self._tag(_take(collaborative, seen, half), "collaborative")

        remaining = limit - len(items)
        if remaining > 0:
            popular = await self._safely("popular", self.songs.popular(limit=remaining, exclude=seen), [])
            items += self._tag(_take(popular, seen, remaining), "popular")
        return items[:limit]

    async def similar_songs(self, song_id: str, limit: int = 10) -> list[SongRecommendation]:
        """Songs close to `song_id` by shared artist or genre. An unknown seed is mirrored first."""
        limit = max(1, limit)
        if not await self._safely("seed_exists", self.songs.exists(song_id), False):
            await self._safely("seed", self.song_service.ensure_song_metadata(song_id), None)
        similar = await self._safely("similar_songs", self.songs.similar_songs(song_id, limit=limit), [])
        items = self._tag(similar, "similar")
        obs_metrics.inc_recommendation_items("songs", "similar", len(items))
        _LOG.debug("recommendations.similar", extra={"song_id": song_id, "count": len(items)})
        return items

    async def _catalog_songs(self, source: str, call: Awaitable[list[SongMetadata]]) -> list[SongMetadata]:
        songs = await self._safely(source, call, [])
        if songs:
            await self.song_service.ensure_many(songs)
        return songs

    @staticmethod
    def _tag(songs: Iterable[SongMetadata], kind: RecommendationType) -> list[SongRecommendation]:
        return [SongRecommendation.from_song(song, kind) for song in songs]

    async def _safely(self, source: str, call: Awaitable[T], default: T) -> T:
        try:
            return await call
        except Exception:
            _LOG.warning("recommendations.source_failed", extra={"source": source}, exc_info=True)
            return default

    # --- users ---

    async def recommend_users(self, user_id: str, limit: int = 20) -> list[UserRecommendation]:
        """Nearby compatible users; raises LocationMissing when the caller has no location."""
        limit = max(1, limit)
        key = USERS_KEY.format(user_id=user_id)
        cached = await self._read_cache(key, "users")
        if cached is not None:
            return [UserRecommendation.model_validate(item) for item in cached[:limit]]

        location = await self.candidates.resolve_location(user_id)
        preferences = await self._discovery_preferences(user_id)
        candidates = await self.candidates.find_candidates(
            user_id,
            location,
            preferences,
            limit=settings.match_interactive_candidate_limit,
        )

        items: list[UserRecommendation] = []
        for candidate in candidates:
            try:
                result = await self.scores.get_or_compute(user_id, candidate.user_id)
            except Exception:
                _LOG.warning(
                    "recommendations.candidate_score_failed",
                    extra={"subject": user_id, "candidate": candidate.user_id},
                    exc_info=True,
                )
                continue
            if result.score < settings.match_min_score:
                continue
            items.append(
                UserRecommendation(
                    user_id=candidate.user_id,
                    score=adjusted_score(result.score, candidate.distance_km, preferences.max_distance_km),
                    music_score=result.score,
                    distance_km=round(candidate.distance_km, 2),
                )
            )
        items.sort(key=lambda item: (-item.score, item.distance_km, item.user_id))
        items = items[:limit]

        obs_metrics.inc_recommendation_items("users", "nearby", len(items))
        await self._write_cache(key, [item.model_dump() for item in items], settings.recommendation_users_ttl_seconds)
        return items

    async def _discovery_preferences(self, user_id: str) -> DatingPreferences:
        try:
            return await self.store.dating_preferences(user_id)
        except PreferencesMissing:
            return DatingPreferences(max_distance_km=float(settings.discovery_default_max_distance_km))

    # --- cache ---

    async def invalidate(self, user_id: str) -> None:
        try:
            await self.redis.delete(SONGS_KEY.format(user_id=user_id), USERS_KEY.format(user_id=user_id))
        except Exception:
            _LOG.warning("recommendations.invalidate_failed", extra={"subject": user_id}, exc_info=True)

    async def _read_cache(self, key: str, kind: str) -> Optional[list]:
        try:
            raw = await self.redis.get(key)
        except Exception:
            obs_metrics.inc_recommendation_cache(kind, "unavailable")
            _LOG.warning("recommendations.cache_unavailable", extra={"key": key}, exc_info=True)
            return None
        if raw is None:
            obs_metrics.inc_recommendation_cache(kind, "miss")
            return None
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            _LOG.warning("recommendations.cache_corrupt", extra={"key": key})
            return None
        if not isinstance(payload, list):
            return None
        obs_metrics.inc_recommendation_cache(kind, "hit")
        return payload

    async def _write_cache(self, key: str, payload: list, ttl: int) -> None:
        try:
            await self.redis.set(key, json.dumps(payload), ex=ttl)
        except Exception:
            _LOG.warning("recommendations.cache_write_failed", extra={"key": key}, exc_info=True)


__all__ = ["RecommendationComposer", "SONGS_KEY", "USERS_KEY", "adjusted_score", "round_robin"]
