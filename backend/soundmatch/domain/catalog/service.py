"""Keeps the local song mirror populated from the external catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from soundmatch.domain import container
from soundmatch.domain.matching.exceptions import UpstreamCatalogUnavailable
from soundmatch.domain.recommendations.sources import SongRepository
from soundmatch.domain.signals import SignalStore, SongMetadata
from soundmatch.infra.catalog import CatalogClient, get_catalog_client, song_from_payload
from soundmatch.infra.redis import redis_client
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)

LOCK_KEY = "song:metadata:lock:{song_id}"

# Checked in order; the first genre with a keyword in the credit string wins.
GENRE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("rock", ("rock", "metal", "band", "guitarist")),
    ("pop", ("pop", "boy band", "girl band")),
    ("hip hop", ("rap", "hip hop", "rapper", "mc")),
    ("r&b", ("r&b", "rnb", "soul")),
    ("electronic", ("dj", "electronic", "edm", "house", "techno")),
    ("classical", ("orchestra", "classical", "symphony")),
    ("jazz", ("jazz", "blues", "saxophone")),
    ("country", ("country", "western")),
)

SongInput = Union[SongMetadata, Mapping[str, Any], str]


def infer_genre_from_artists(primary_artists: Optional[str]) -> Optional[str]:
    if not primary_artists:
        return None
    credits = primary_artists.lower()
    for genre, keywords in GENRE_KEYWORDS:
        if any(keyword in credits for keyword in keywords):
            return genre
    return None


def coerce_song(song: SongInput) -> tuple[str, Optional[SongMetadata]]:
    if isinstance(song, SongMetadata):
        return song.song_id, song
    if isinstance(song, Mapping):
        metadata = song_from_payload(song)
        return metadata.song_id, metadata
    song_id = str(song).strip()
    if not song_id:
        raise ValueError("song id must not be empty")
    return song_id, None


class SongService:
    """Idempotent "make sure we know this song" used by ingestion and recommendations."""

    def __init__(
        self,
        *,
        songs: SongRepository | None = None,
        store: SignalStore | None = None,
        catalog: CatalogClient | None = None,
        redis=None,
        wait_attempts: int | None = None,
        wait_seconds: float | None = None,
    ) -> None:
        self.songs = songs or container.get_song_repository()
        self.store = store or container.get_signal_store()
        self._catalog = catalog
        self.redis = redis or redis_client
        self.wait_attempts = settings.song_metadata_wait_attempts if wait_attempts is None else wait_attempts
        self.wait_seconds = settings.song_metadata_wait_seconds if wait_seconds is None else wait_seconds

    @property
    def catalog(self) -> CatalogClient:
        return self._catalog or get_catalog_client()

    async def ensure_song_metadata(self, song: SongInput) -> Optional[SongMetadata]:
        """Store the song when it is unknown and return its metadata.

        Returns None only when an id was given and the catalog could not supply
        the song. When another caller holds the lock the mirror is polled first;
        if the song still has not landed it is fetched and stored here too.
        """
        song_id, metadata = coerce_song(song)

        stored = await self._stored(song_id)
        if stored is not None:
            obs_metrics.inc_song_metadata("present")
            return stored

        lock_key = LOCK_KEY.format(song_id=song_id)
        locked = await self._acquire(lock_key)
        if not locked:
            obs_metrics.inc_song_metadata("in_flight")
            stored = await self._wait_for_mirror(song_id)
            if stored is not None:
                return stored
            _LOG.info("songs.lock_wait_expired", extra={"song_id": song_id})

        try:
            if metadata is None:
                try:
                    metadata = await self.catalog.song(song_id)
                except UpstreamCatalogUnavailable:
                    obs_metrics.inc_song_metadata("catalog_unavailable")
                    _LOG.info("songs.catalog_unavailable", extra={"song_id": song_id})
                    return None
            if not metadata.genre:
                metadata.genre = infer_genre_from_artists(metadata.primary_artists)
            await self.songs.upsert(metadata)
        finally:
            if locked:
                await self._release(lock_key)

        obs_metrics.inc_song_metadata("stored")
        _LOG.debug("songs.stored", extra={"song_id": song_id, "genre": metadata.genre})
        return metadata

    async def ensure_many(self, songs: list[SongMetadata]) -> None:
        """Best-effort mirror of songs surfaced by the catalog."""
        for song in songs:
            try:
                await self.ensure_song_metadata(song)
            except Exception:
                _LOG.warning("songs.ensure_failed", extra={"song_id": song.song_id}, exc_info=True)

    async def _stored(self, song_id: str) -> Optional[SongMetadata]:
        if not await self.songs.exists(song_id):
            return None
        stored = await self.store.song_metadata([song_id])
        return stored.get(song_id)

    async def _wait_for_mirror(self, song_id: str) -> Optional[SongMetadata]:
        for _ in range(self.wait_attempts):
            await asyncio.sleep(self.wait_seconds)
            stored = await self._stored(song_id)
            if stored is not None:
                return stored
        return None

    async def _acquire(self, key: str) -> bool:
        try:
            return bool(await self.redis.set(key, "1", nx=True, ex=settings.song_metadata_lock_seconds))
        except Exception:
            # Without Redis the upsert is still idempotent; proceed unlocked
            _LOG.warning("songs.lock_unavailable", extra={"key": key}, exc_info=True)
            return True

    async def _release(self, key: str) -> None:
        try:
            await self.redis.delete(key)
        except Exception:
            _LOG.warning("songs.unlock_failed", extra={"key": key}, exc_info=True)


__all__ = ["GENRE_KEYWORDS", "SongInput", "SongService", "coerce_song", "infer_genre_from_artists"]
