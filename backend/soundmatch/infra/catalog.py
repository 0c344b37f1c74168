"""HTTP client for the external music catalog service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence

import httpx

from soundmatch.domain.matching.exceptions import UpstreamCatalogUnavailable
from soundmatch.domain.signals import SongMetadata
from soundmatch.obs import metrics as obs_metrics
from soundmatch.settings import settings

_LOG = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


def song_from_payload(payload: Mapping[str, Any]) -> SongMetadata:
	"""Map a catalog song object onto our song metadata."""
	song_id = _text(payload.get("id") or payload.get("song_id"))
	if not song_id:
		raise ValueError("catalog song without id")
	return SongMetadata(
		song_id=song_id,
		name=_text(payload.get("song") or payload.get("name") or payload.get("title")),
		album=_text(payload.get("album")),
		primary_artists=_text(payload.get("primary_artists")),
		genre=_text(payload.get("genre")),
		release_year=_text(payload.get("year") or payload.get("release_year")),
		language=_text(payload.get("language")),
		image_url=_text(payload.get("image")),
		media_url=_text(payload.get("media_url")),
	)


class CatalogClient(Protocol):
	"""Interface for catalog lookups. Every call is best effort."""

	async def song(self, song_id: str) -> SongMetadata:
		...

	async def search(self, query: str, *, limit: int = 20) -> list[SongMetadata]:
		...

	async def trending(self, *, limit: int = 20) -> list[SongMetadata]:
		...

	async def genre_songs(self, genres: Sequence[str], *, limit: int = 20) -> list[SongMetadata]:
		...


@dataclass
class HttpCatalogClient(CatalogClient):
	"""Catalog client over httpx; failures surface as UpstreamCatalogUnavailable."""

	http: httpx.AsyncClient
	base_url: str = settings.catalog_api_url
	request_timeout: float = settings.catalog_timeout_seconds

	async def _get(self, endpoint: str, path: str, params: Mapping[str, Any] | None = None) -> Any:
		url = f"{self.base_url.rstrip('/')}{path}"
		try:
			response = await self.http.get(url, params=params, timeout=self.request_timeout)
			response.raise_for_status()
			payload = response.json()
		except httpx.TimeoutException as exc:
			obs_metrics.inc_catalog_request(endpoint, "timeout")
			_LOG.warning("catalog.timeout", extra={"endpoint": endpoint})
			raise UpstreamCatalogUnavailable("catalog_timeout") from exc
		except (httpx.HTTPError, ValueError) as exc:
			obs_metrics.inc_catalog_request(endpoint, "error")
			_LOG.warning("catalog.request_failed", extra={"endpoint": endpoint, "error": str(exc)})
			raise UpstreamCatalogUnavailable() from exc
		obs_metrics.inc_catalog_request(endpoint, "ok")
		return payload

	def _songs(self, endpoint: str, payload: Any) -> list[SongMetadata]:
		items = payload.get("songs") if isinstance(payload, Mapping) else None
		if not isinstance(items, list):
			obs_metrics.inc_catalog_request(endpoint, "malformed")
			raise UpstreamCatalogUnavailable("catalog_malformed")
		songs: list[SongMetadata] = []
		for item in items:
			if not isinstance(item, Mapping):
				continue
			try:
				songs.append(song_from_payload(item))
			except ValueError:
				continue
		return songs

	async def song(self, song_id: str) -> SongMetadata:
		payload = await self._get("song", f"/api/songs/{song_id}")
		if not isinstance(payload, Mapping):
			raise UpstreamCatalogUnavailable("catalog_malformed")
		try:
			return song_from_payload(payload)
		except ValueError as exc:
			raise UpstreamCatalogUnavailable("catalog_malformed") from exc

	async def search(self, query: str, *, limit: int = 20) -> list[SongMetadata]:
		payload = await self._get("search", "/song/", {"query": query, "songdata": "true", "limit": limit})
		return self._songs("search", payload)[:limit]

	async def trending(self, *, limit: int = 20) -> list[SongMetadata]:
		payload = await self._get("trending", "/api/trending", {"limit": limit})
		return self._songs("trending", payload)[:limit]

	async def genre_songs(self, genres: Sequence[str], *, limit: int = 20) -> list[SongMetadata]:
		names = [g for g in genres if g]
		if not names:
			return []
		payload = await self._get("genre_songs", "/api/genre-songs", {"genres": ",".join(names), "limit": limit})
		return self._songs("genre_songs", payload)[:limit]


_client: CatalogClient | None = None


def get_catalog_client() -> CatalogClient:
	global _client
	if _client is None:
		_client = HttpCatalogClient(http=httpx.AsyncClient())
	return _client


def set_catalog_client(client: CatalogClient | None) -> None:
	global _client
	_client = client


async def close_catalog_client() -> None:
	global _client
	if isinstance(_client, HttpCatalogClient):
		await _client.http.aclose()
	_client = None
