import asyncio
import sys
from pathlib import Path
from typing import Sequence

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from soundmatch.domain import container
from soundmatch.domain.matching.exceptions import UpstreamCatalogUnavailable
from soundmatch.domain.signals import SongMetadata
from soundmatch.infra import catalog as catalog_module
from soundmatch.infra import postgres
from soundmatch.main import app


# Ensure a selector-based event loop policy on Windows to avoid Proactor issues with async IO
if hasattr(asyncio, "WindowsSelectorEventLoopPolicy"):
	try:
		asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
	except Exception:
		pass


class StubCatalog:
	"""In-process stand-in for the external catalog service."""

	def __init__(self) -> None:
		self.songs: dict[str, SongMetadata] = {}
		self.trending_songs: list[SongMetadata] = []
		self.genre_catalog: dict[str, list[SongMetadata]] = {}
		self.available = True
		self.calls: list[tuple[str, object]] = []

	def _check(self, name: str, arg: object) -> None:
		self.calls.append((name, arg))
		if not self.available:
			raise UpstreamCatalogUnavailable()

	async def song(self, song_id: str) -> SongMetadata:
		self._check("song", song_id)
		if song_id not in self.songs:
			raise UpstreamCatalogUnavailable("catalog_not_found")
		return self.songs[song_id]

	async def search(self, query: str, *, limit: int = 20) -> list[SongMetadata]:
		self._check("search", query)
		needle = query.lower()
		return [s for s in self.songs.values() if needle in (s.name or "").lower()][:limit]

	async def trending(self, *, limit: int = 20) -> list[SongMetadata]:
		self._check("trending", limit)
		return self.trending_songs[:limit]

	async def genre_songs(self, genres: Sequence[str], *, limit: int = 20) -> list[SongMetadata]:
		self._check("genre_songs", tuple(genres))
		found: list[SongMetadata] = []
		for genre in genres:
			found.extend(self.genre_catalog.get(genre, []))
		return found[:limit]


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from soundmatch.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def memory_store():
	"""Fresh in-memory signal store wired into every repository."""
	return container.configure_in_memory()


@pytest.fixture(autouse=True)
def catalog():
	stub = StubCatalog()
	catalog_module.set_catalog_client(stub)
	try:
		yield stub
	finally:
		catalog_module.set_catalog_client(None)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
