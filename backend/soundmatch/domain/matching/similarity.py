"""Five-signal musical compatibility score.

Each component yields a similarity in [0, 1] that is multiplied by its weight.
A component only counts toward the denominator when both users carry data for
it, so a pair is never penalised for a signal neither side can express. The
final score is the evaluated share of the weights, scaled to 0-100 and rounded
to one decimal.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from soundmatch.domain import container
from soundmatch.domain.matching.exceptions import SelfMatch
from soundmatch.domain.matching.ledger import MatchLedger
from soundmatch.domain.matching.models import ComponentScore, ScoreBreakdown, canonical_pair
from soundmatch.domain.signals import ListeningEntry, SignalStore, SongMetadata
from soundmatch.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

SHARED_SONGS = "shared_songs"
SHARED_ARTISTS = "shared_artists"
GENRE_AFFINITY = "genre_affinity"
LISTENING_TIME = "listening_time"
RELEASE_ERA = "release_era"

COMPONENT_WEIGHTS: dict[str, float] = {
    SHARED_SONGS: 35.0,
    SHARED_ARTISTS: 25.0,
    GENRE_AFFINITY: 20.0,
    LISTENING_TIME: 10.0,
    RELEASE_ERA: 10.0,
}


def jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def artist_overlap(
    artists_a: Mapping[str, float],
    artists_b: Mapping[str, float],
    total_a: float,
    total_b: float,
) -> float:
    denominator = max(total_a, total_b)
    if denominator <= 0:
        return 0.0
    shared = sum(min(weight, artists_b[name]) for name, weight in artists_a.items() if name in artists_b)
    # Multi-artist credits can count one play several times
    return min(1.0, shared / denominator)


def cosine(a: Mapping, b: Mapping) -> float:
    keys = set(a) | set(b)
    dot = sum(float(a.get(k, 0.0)) * float(b.get(k, 0.0)) for k in keys)
    norm_a = math.sqrt(sum(float(v) ** 2 for v in a.values()))
    norm_b = math.sqrt(sum(float(v) ** 2 for v in b.values()))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(0.0, min(1.0, dot / (norm_a * norm_b)))


def l1_normalize(vector: Mapping) -> dict:
    total = sum(float(v) for v in vector.values())
    if total <= 0:
        return {}
    return {k: float(v) / total for k, v in vector.items()}


@dataclass(slots=True)
class MusicProfile:
    """Everything the scorer needs about one user, loaded once per pair."""

    user_id: str
    history: list[ListeningEntry] = field(default_factory=list)
    songs: dict[str, SongMetadata] = field(default_factory=dict)
    genres: dict[str, float] = field(default_factory=dict)

    def song_ids(self) -> set[str]:
        return {entry.song_id for entry in self.history if entry.song_id}

    def total_plays(self) -> int:
        return sum(max(0, entry.play_count) for entry in self.history)

    def artist_plays(self) -> dict[str, float]:
        plays: dict[str, float] = defaultdict(float)
        for entry in self.history:
            song = self.songs.get(entry.song_id)
            if song is None:
                continue
            for artist in song.artists():
                plays[artist] += entry.play_count
        return dict(plays)

    def hour_vector(self) -> dict[int, float]:
        """Rows per hour of day of the most recent play, L1-normalised."""
        counts: dict[int, float] = {hour: 0.0 for hour in range(24)}
        for entry in self.history:
            if entry.last_played is not None:
                counts[entry.last_played.hour] += 1
        return l1_normalize(counts)

    def decade_vector(self) -> dict[int, float]:
        counts: dict[int, float] = defaultdict(float)
        for entry in self.history:
            song = self.songs.get(entry.song_id)
            decade = song.decade() if song is not None else None
            if decade is not None:
                counts[decade] += entry.play_count
        return l1_normalize(counts)

    def genre_vector(self) -> dict[str, float]:
        return {name: weight for name, weight in self.genres.items() if name and weight > 0}


def compute_breakdown(a: MusicProfile, b: MusicProfile) -> ScoreBreakdown:
    components: list[ComponentScore] = []

    songs_a, songs_b = a.song_ids(), b.song_ids()
    components.append(
        ComponentScore(
            name=SHARED_SONGS,
            weight=COMPONENT_WEIGHTS[SHARED_SONGS],
            similarity=jaccard(songs_a, songs_b),
            evaluated=bool(songs_a) and bool(songs_b),
        )
    )

    artists_a, artists_b = a.artist_plays(), b.artist_plays()
    components.append(
        ComponentScore(
            name=SHARED_ARTISTS,
            weight=COMPONENT_WEIGHTS[SHARED_ARTISTS],
            similarity=artist_overlap(artists_a, artists_b, a.total_plays(), b.total_plays()),
            evaluated=bool(artists_a) and bool(artists_b),
        )
    )

    genres_a, genres_b = a.genre_vector(), b.genre_vector()
    components.append(
        ComponentScore(
            name=GENRE_AFFINITY,
            weight=COMPONENT_WEIGHTS[GENRE_AFFINITY],
            similarity=cosine(genres_a, genres_b),
            evaluated=bool(genres_a) and bool(genres_b),
        )
    )

    hours_a, hours_b = a.hour_vector(), b.hour_vector()
    components.append(
        ComponentScore(
            name=LISTENING_TIME,
            weight=COMPONENT_WEIGHTS[LISTENING_TIME],
            similarity=cosine(hours_a, hours_b),
            evaluated=bool(hours_a) and bool(hours_b),
        )
    )

    decades_a, decades_b = a.decade_vector(), b.decade_vector()
    components.append(
        ComponentScore(
            name=RELEASE_ERA,
            weight=COMPONENT_WEIGHTS[RELEASE_ERA],
            similarity=cosine(decades_a, decades_b),
            evaluated=bool(decades_a) and bool(decades_b),
        )
    )
    return ScoreBreakdown(components=components)


class SimilarityScorer:
    """Loads both users' signals, scores the pair and records it in the ledger."""

    def __init__(
        self,
        *,
        store: SignalStore | None = None,
        ledger: MatchLedger | None = None,
    ) -> None:
        self.store = store or container.get_signal_store()
        self.ledger = ledger or container.get_match_ledger()

    async def load_profile(self, user_id: str) -> MusicProfile:
        history, weights = await asyncio.gather(
            self.store.listening_history(user_id),
            self.store.preference_weights(user_id),
        )
        songs = await self.store.song_metadata(_song_ids(history))
        return MusicProfile(user_id=user_id, history=history, songs=songs, genres=weights.genre_vector())

    async def breakdown(self, user_a: str, user_b: str) -> ScoreBreakdown:
        if str(user_a) == str(user_b):
            raise SelfMatch()
        low, high = canonical_pair(user_a, user_b)
        profile_low = await self.load_profile(low)
        profile_high = await self.load_profile(high)
        return compute_breakdown(profile_low, profile_high)

    async def score(self, user_a: str, user_b: str) -> float:
        start = time.perf_counter()
        result = await self.breakdown(user_a, user_b)
        score = result.score
        low, high = canonical_pair(user_a, user_b)
        await self.ledger.upsert_score(low, high, score)
        elapsed = time.perf_counter() - start
        obs_metrics.observe_match_score(elapsed)
        _LOG.debug(
            "similarity.scored",
            extra={
                "pair": f"{low}:{high}",
                "score": score,
                "evaluated_weight": result.evaluated_weight,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )
        return score


def _song_ids(history: Sequence[ListeningEntry]) -> list[str]:
    return sorted({entry.song_id for entry in history if entry.song_id})


__all__ = [
    "COMPONENT_WEIGHTS",
    "MusicProfile",
    "SimilarityScorer",
    "artist_overlap",
    "compute_breakdown",
    "cosine",
    "jaccard",
    "l1_normalize",
]
