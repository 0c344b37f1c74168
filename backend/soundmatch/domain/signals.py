"""Read-side access to the listening and dating signals each user carries."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Mapping, Optional, Protocol

from soundmatch.domain.matching.exceptions import PreferencesMissing

DEFAULT_MIN_AGE = 18
DEFAULT_MAX_AGE = 100
DEFAULT_MAX_DISTANCE_KM = 100.0


@dataclass(slots=True, frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(slots=True)
class DatingPreferences:
    """Who a user wants to see. A null preferred gender matches anyone."""

    preferred_gender: Optional[str] = None
    min_age: int = DEFAULT_MIN_AGE
    max_age: int = DEFAULT_MAX_AGE
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM
    is_visible: bool = True


@dataclass(slots=True)
class UserProfile:
    user_id: str
    gender: Optional[str] = None
    birth_date: Optional[date] = None

    def age_on(self, today: date) -> Optional[int]:
        if self.birth_date is None:
            return None
        born = self.birth_date
        years = today.year - born.year
        if (today.month, today.day) < (born.month, born.day):
            years -= 1
        return years


@dataclass(slots=True)
class ListeningEntry:
    song_id: str
    play_count: int = 1
    last_played: Optional[datetime] = None
    is_favorite: bool = False


@dataclass(slots=True)
class SongMetadata:
    song_id: str
    name: Optional[str] = None
    album: Optional[str] = None
    primary_artists: Optional[str] = None
    genre: Optional[str] = None
    release_year: Optional[str] = None
    language: Optional[str] = None
    image_url: Optional[str] = None
    media_url: Optional[str] = None

    def artists(self) -> list[str]:
        """Split the credit string on commas; blanks are dropped, case is kept."""
        if not self.primary_artists:
            return []
        return [part.strip() for part in self.primary_artists.split(",") if part.strip()]

    def decade(self) -> Optional[int]:
        raw = (self.release_year or "").strip()
        if len(raw) < 4 or not raw[:4].isdigit():
            return None
        return (int(raw[:4]) // 10) * 10


@dataclass(slots=True)
class WeightedName:
    name: str
    weight: float


@dataclass(slots=True)
class PreferenceWeights:
    """Genre, artist and language weights, each ordered by weight descending."""

    genres: list[WeightedName] = field(default_factory=list)
    artists: list[WeightedName] = field(default_factory=list)
    languages: list[WeightedName] = field(default_factory=list)

    def genre_vector(self) -> dict[str, float]:
        vector: dict[str, float] = defaultdict(float)
        for item in self.genres:
            if item.name:
                vector[item.name] += float(item.weight)
        return dict(vector)

    def top_genres(self, limit: int | None = None) -> list[str]:
        names = [item.name for item in self.genres if item.name]
        return names if limit is None else names[:limit]


@dataclass(slots=True)
class CandidateRow:
    """A potential match as returned by the coarse store prefilter."""

    user_id: str
    latitude: float
    longitude: float
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    is_visible: bool = True


class SignalStore(Protocol):
    """Storage contract for every signal the engine reads."""

    async def listening_history(self, user_id: str) -> list[ListeningEntry]:
        ...

    async def listening_event_count(self, user_id: str) -> int:
        ...

    async def preference_weights(self, user_id: str) -> PreferenceWeights:
        ...

    async def location(self, user_id: str) -> Location | None:
        ...

    async def dating_preferences(self, user_id: str) -> DatingPreferences:
        """Stored preferences; raises PreferencesMissing when the row is absent."""
        ...

    async def song_metadata(self, song_ids: Iterable[str]) -> dict[str, SongMetadata]:
        ...

    async def candidate_pool(
        self,
        user_id: str,
        *,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
    ) -> list[CandidateRow]:
        """Located users other than `user_id` inside the bounding box."""
        ...


def _ordered(weights: Mapping[str, float]) -> list[WeightedName]:
    items = [WeightedName(name=name, weight=weight) for name, weight in weights.items()]
    items.sort(key=lambda item: (-item.weight, item.name))
    return items


class InMemorySignalStore(SignalStore):
    """Dictionary-backed store used by tests and local runs without Postgres."""

    def __init__(self) -> None:
        self.profiles: dict[str, UserProfile] = {}
        self.locations: dict[str, Location] = {}
        self.preferences: dict[str, DatingPreferences] = {}
        self.history: dict[str, dict[str, ListeningEntry]] = defaultdict(dict)
        self.weights: dict[str, dict[str, dict[str, float]]] = defaultdict(
            lambda: {"genre": {}, "artist": {}, "language": {}}
        )
        self.songs: dict[str, SongMetadata] = {}

    # --- seeding helpers ---
    def add_user(
        self,
        user_id: str,
        *,
        gender: str | None = None,
        birth_date: date | None = None,
        location: Location | None = None,
        preferences: DatingPreferences | None = None,
    ) -> None:
        self.profiles[user_id] = UserProfile(user_id=user_id, gender=gender, birth_date=birth_date)
        if location is not None:
            self.locations[user_id] = location
        if preferences is not None:
            self.preferences[user_id] = preferences

    def add_song(self, song: SongMetadata) -> None:
        self.songs[song.song_id] = song

    def add_play(
        self,
        user_id: str,
        song_id: str,
        *,
        play_count: int = 1,
        last_played: datetime | None = None,
        is_favorite: bool = False,
    ) -> None:
        entry = self.history[user_id].get(song_id)
        if entry is None:
            self.history[user_id][song_id] = ListeningEntry(
                song_id=song_id,
                play_count=play_count,
                last_played=last_played,
                is_favorite=is_favorite,
            )
            return
        entry.play_count += play_count
        if last_played is not None:
            entry.last_played = last_played
        entry.is_favorite = entry.is_favorite or is_favorite

    def set_weight(self, user_id: str, dimension: str, name: str, weight: float) -> None:
        self.weights[user_id][dimension][name] = weight

    # --- SignalStore ---
    async def listening_history(self, user_id: str) -> list[ListeningEntry]:
        return list(self.history.get(user_id, {}).values())

    async def listening_event_count(self, user_id: str) -> int:
        return len(self.history.get(user_id, {}))

    async def preference_weights(self, user_id: str) -> PreferenceWeights:
        dims = self.weights.get(user_id)
        if dims is None:
            return PreferenceWeights()
        return PreferenceWeights(
            genres=_ordered(dims["genre"]),
            artists=_ordered(dims["artist"]),
            languages=_ordered(dims["language"]),
        )

    async def location(self, user_id: str) -> Location | None:
        return self.locations.get(user_id)

    async def dating_preferences(self, user_id: str) -> DatingPreferences:
        prefs = self.preferences.get(user_id)
        if prefs is None:
            raise PreferencesMissing()
        return prefs

    async def song_metadata(self, song_ids: Iterable[str]) -> dict[str, SongMetadata]:
        return {song_id: self.songs[song_id] for song_id in song_ids if song_id in self.songs}

    async def candidate_pool(
        self,
        user_id: str,
        *,
        min_lat: float,
        max_lat: float,
        min_lon: float,
        max_lon: float,
    ) -> list[CandidateRow]:
        rows: list[CandidateRow] = []
        for other_id, loc in self.locations.items():
            if other_id == user_id:
                continue
            if not (min_lat <= loc.latitude <= max_lat and min_lon <= loc.longitude <= max_lon):
                continue
            profile = self.profiles.get(other_id) or UserProfile(user_id=other_id)
            prefs = self.preferences.get(other_id)
            rows.append(
                CandidateRow(
                    user_id=other_id,
                    latitude=loc.latitude,
                    longitude=loc.longitude,
                    gender=profile.gender,
                    birth_date=profile.birth_date,
                    is_visible=prefs.is_visible if prefs is not None else True,
                )
            )
        return rows


__all__ = [
    "CandidateRow",
    "DatingPreferences",
    "InMemorySignalStore",
    "ListeningEntry",
    "Location",
    "PreferenceWeights",
    "SignalStore",
    "SongMetadata",
    "UserProfile",
    "WeightedName",
]
