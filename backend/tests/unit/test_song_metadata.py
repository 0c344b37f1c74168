import pytest

from soundmatch.domain.catalog.service import SongService, infer_genre_from_artists
from soundmatch.domain.signals import SongMetadata


@pytest.mark.parametrize(
    ("credits", "genre"),
    [
        ("The Rolling Stones Band", "rock"),
        ("DJ Snake, Selena Gomez", "electronic"),
        ("London Symphony Orchestra", "classical"),
        ("Arijit Singh", None),
        (None, None),
    ],
)
def test_infer_genre_from_artists(credits, genre):
    assert infer_genre_from_artists(credits) == genre


@pytest.mark.asyncio
async def test_payload_is_stored_with_inferred_genre(memory_store, catalog):
    service = SongService()
    payload = {"id": "abc", "song": "Turn Down", "primary_artists": "DJ Snake", "year": "2013", "language": "english"}

    song = await service.ensure_song_metadata(payload)

    assert song.genre == "electronic"
    assert memory_store.songs["abc"].name == "Turn Down"
    assert catalog.calls == []


@pytest.mark.asyncio
async def test_known_song_is_left_alone(memory_store, catalog):
    memory_store.add_song(SongMetadata(song_id="abc", name="Stored", genre="pop"))

    song = await SongService().ensure_song_metadata({"id": "abc", "song": "From payload"})

    assert song.name == "Stored"
    assert memory_store.songs["abc"].name == "Stored"


@pytest.mark.asyncio
async def test_bare_id_is_fetched_from_catalog(memory_store, catalog):
    catalog.songs["xyz"] = SongMetadata(song_id="xyz", name="Fetched", primary_artists="Norah Jones, Blues Trio")

    song = await SongService().ensure_song_metadata("xyz")

    assert song is not None
    assert memory_store.songs["xyz"].genre == "jazz"
    assert catalog.calls == [("song", "xyz")]


@pytest.mark.asyncio
async def test_catalog_outage_returns_none(memory_store, catalog):
    catalog.available = False

    assert await SongService().ensure_song_metadata("missing") is None
    assert "missing" not in memory_store.songs


@pytest.mark.asyncio
async def test_lock_held_elsewhere_waits_for_the_stored_song(memory_store, catalog, fake_redis):
    await fake_redis.set("song:metadata:lock:xyz", "1")
    catalog.songs["xyz"] = SongMetadata(song_id="xyz", name="Fetched")
    service = SongService(wait_attempts=3, wait_seconds=0)
    polls: list[str] = []

    async def lands_on_second_poll(song_id):
        if song_id == "xyz" and len(polls) == 1:
            memory_store.add_song(SongMetadata(song_id="xyz", name="Stored by holder", genre="pop"))
        polls.append(song_id)
        return song_id in memory_store.songs

    service.songs.exists = lands_on_second_poll

    song = await service.ensure_song_metadata("xyz")

    assert song.name == "Stored by holder"
    assert catalog.calls == []


@pytest.mark.asyncio
async def test_lock_held_past_the_wait_still_resolves_bare_id(memory_store, catalog, fake_redis):
    await fake_redis.set("song:metadata:lock:xyz", "1")
    catalog.songs["xyz"] = SongMetadata(song_id="xyz", name="Fetched", primary_artists="Blues Trio")

    song = await SongService(wait_attempts=2, wait_seconds=0).ensure_song_metadata("xyz")

    assert song is not None and song.name == "Fetched"
    assert memory_store.songs["xyz"].genre == "jazz"
    assert catalog.calls == [("song", "xyz")]
    assert await fake_redis.get("song:metadata:lock:xyz") is not None


@pytest.mark.asyncio
async def test_lock_is_released_after_store(memory_store, fake_redis):
    await SongService().ensure_song_metadata(SongMetadata(song_id="s9", name="Nine"))

    assert await fake_redis.get("song:metadata:lock:s9") is None


@pytest.mark.asyncio
async def test_empty_payload_id_is_rejected():
    with pytest.raises(ValueError):
        await SongService().ensure_song_metadata({"song": "no id"})
