"""Song sources the recommendation composer draws from."""

from __future__ import annotations

import random
from collections import defaultdict
from typing import Collection, Protocol, Sequence

from soundmatch.domain.signals import InMemorySignalStore, SongMetadata, WeightedName

# Points a song earns towards a seed song; a song with none is not similar
SIMILAR_ARTIST_POINTS = 10
SIMILAR_GENRE_POINTS = 5


class SongRepository(Protocol):
    """Storage contract for the local song mirror and its listening stats."""

    async def exists(self, song_id: str) -> bool:
        ...

    async def upsert(self, song: SongMetadata) -> None:
        ...

    async def by_genre(self, genre: str, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        ...

    async def popular(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        """Songs ordered by distinct listener count, most listened first."""
        ...

    async def random(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        ...

    async def by_preferences(
        self,
        user_id: str,
        *,
        artists: Sequence[WeightedName],
        genres: Sequence[WeightedName],
        limit: int,
    ) -> list[SongMetadata]:
        """Unheard songs ranked by the user's summed artist and genre weights."""
        ...

    async def heard_by(self, user_ids: Sequence[str], *, exclude_user: str, limit: int) -> list[SongMetadata]:
        """Songs heard by any of `user_ids` that `exclude_user` has not heard."""
        ...

    async def heard_song_ids(self, user_id: str) -> set[str]:
        ...

    async def common_songs(self, user_a: str, user_b: str, *, limit: int) -> list[SongMetadata]:
        ...

    async def similar_songs(self, song_id: str, *, limit: int) -> list[SongMetadata]:
        """Songs sharing an artist or the genre of `song_id`, closest first."""
        ...


class InMemorySongRepository(SongRepository):
    """Song repository over an in-memory signal store."""

    def __init__(self, store: InMemorySignalStore, *, seed: int | None = None) -> None:
        self.store = store
        self._random = random.Random(seed)

    def _songs(self, exclude: Collection[str] = ()) -> list[SongMetadata]:
        excluded = set(exclude)
        return [song for song in self.store.songs.values() if song.song_id not in excluded]

    async def exists(self, song_id: str) -> bool:
        return song_id in self.store.songs

    async def upsert(self, song: SongMetadata) -> None:
        existing = self.store.songs.get(song.song_id)
        if existing is not None and song.genre is None:
            song.genre = existing.genre
        self.store.songs[song.song_id] = song

    async def by_genre(self, genre: str, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        wanted = genre.strip().lower()
        matches = [s for s in self._songs(exclude) if (s.genre or "").strip().lower() == wanted]
        matches.sort(key=lambda s: (-self._listeners(s.song_id), s.name or "", s.song_id))
        return matches[:limit]

    async def popular(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        heard = [s for s in self._songs(exclude) if self._listeners(s.song_id) > 0]
        heard.sort(key=lambda s: (-self._listeners(s.song_id), s.name or "", s.song_id))
        return heard[:limit]

    async def random(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
        pool = sorted(self._songs(exclude), key=lambda s: s.song_id)
        if limit >= len(pool):
            self._random.shuffle(pool)
            return pool
        return self._random.sample(pool, limit)

    async def by_preferences(
        self,
        user_id: str,
        *,
        artists: Sequence[WeightedName],
        genres: Sequence[WeightedName],
        limit: int,
    ) -> list[SongMetadata]:
        heard = await self.heard_song_ids(user_id)
        genre_weights = {g.name: g.weight for g in genres}
        artist_weights = {a.name: a.weight for a in artists}
        ranked: list[tuple[float, SongMetadata]] = []
        for song in self._songs(heard):
            affinity = 0.0
            hit = False
            if song.genre in genre_weights:
                affinity += genre_weights[song.genre]
                hit = True
            for artist in song.artists():
                if artist in artist_weights:
                    affinity += artist_weights[artist]
                    hit = True
            if hit:
                ranked.append((affinity, song))
        ranked.sort(key=lambda item: (-item[0], item[1].name or "", item[1].song_id))
        return [song for _, song in ranked[:limit]]

    async def heard_by(self, user_ids: Sequence[str], *, exclude_user: str, limit: int) -> list[SongMetadata]:
        mine = await self.heard_song_ids(exclude_user)
        listeners: dict[str, set[str]] = defaultdict(set)
        plays: dict[str, int] = defaultdict(int)
        for other in user_ids:
            for entry in self.store.history.get(other, {}).values():
                if entry.song_id in mine or entry.song_id not in self.store.songs:
                    continue
                listeners[entry.song_id].add(other)
                plays[entry.song_id] += entry.play_count
        ranked = sorted(
            listeners,
            key=lambda song_id: (-len(listeners[song_id]), -plays[song_id], self.store.songs[song_id].name or "", song_id),
        )
        return [self.store.songs[song_id] for song_id in ranked[:limit]]

    async def heard_song_ids(self, user_id: str) -> set[str]:
        return set(self.store.history.get(user_id, {}))

    async def common_songs(self, user_a: str, user_b: str, *, limit: int) -> list[SongMetadata]:
        shared = (await self.heard_song_ids(user_a)) & (await self.heard_song_ids(user_b))
        songs = [self.store.songs[song_id] for song_id in shared if song_id in self.store.songs]
        songs.sort(key=lambda s: (s.name or "", s.song_id))
        return songs[:limit]

    async def similar_songs(self, song_id: str, *, limit: int) -> list[SongMetadata]:
        seed = self.store.songs.get(song_id)
        if seed is None:
            return []
        seed_artists = [artist.lower() for artist in seed.artists()]
        ranked: list[tuple[int, SongMetadata]] = []
        for song in self._songs([song_id]):
            credits = (song.primary_artists or "").lower()
            points = 0
            if any(artist in credits for artist in seed_artists):
                points += SIMILAR_ARTIST_POINTS
            if seed.genre and song.genre == seed.genre:
                points += SIMILAR_GENRE_POINTS
            if points:
                ranked.append((points, song))
        ranked.sort(key=lambda item: (-item[0], item[1].name or "", item[1].song_id))
        return [song for _, song in ranked[:limit]]

    def _listeners(self, song_id: str) -> int:
        return sum(1 for history in self.store.history.values() if song_id in history)


__all__ = ["InMemorySongRepository", "SIMILAR_ARTIST_POINTS", "SIMILAR_GENRE_POINTS", "SongRepository"]
