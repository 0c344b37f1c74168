"""PostgreSQL-backed signal store."""

from __future__ import annotations

from typing import Iterable, Optional

import asyncpg

from soundmatch.domain.matching.exceptions import PreferencesMissing
from soundmatch.domain.signals import (
	CandidateRow,
	DatingPreferences,
	ListeningEntry,
	Location,
	PreferenceWeights,
	SignalStore,
	SongMetadata,
	WeightedName,
)
from soundmatch.infra import postgres


def row_to_song(row: asyncpg.Record) -> SongMetadata:
	return SongMetadata(
		song_id=str(row["song_id"]),
		name=row.get("song_name"),
		album=row.get("album"),
		primary_artists=row.get("primary_artists"),
		genre=row.get("genre"),
		release_year=row.get("release_year"),
		language=row.get("language"),
		image_url=row.get("image_url"),
		media_url=row.get("media_url"),
	)


SONG_COLUMNS = "song_id, song_name, album, primary_artists, genre, release_year, language, image_url, media_url"


class PostgresSignalStore(SignalStore):
	"""Reads user signals using asyncpg."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def listening_history(self, user_id: str) -> list[ListeningEntry]:
		async with postgres.connection("signals.history", pool=self._pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT song_id, play_count, last_played, is_favorite
				FROM user_music_history
				WHERE user_id = $1
				""",
				user_id,
			)
		return [
			ListeningEntry(
				song_id=str(row["song_id"]),
				play_count=int(row["play_count"] or 0),
				last_played=row["last_played"],
				is_favorite=bool(row["is_favorite"]),
			)
			for row in rows
		]

	async def listening_event_count(self, user_id: str) -> int:
		async with postgres.connection("signals.history_count", pool=self._pool) as conn:
			count = await conn.fetchval(
				"SELECT COUNT(*) FROM user_music_history WHERE user_id = $1",
				user_id,
			)
		return int(count or 0)

	async def preference_weights(self, user_id: str) -> PreferenceWeights:
		async with postgres.connection("signals.weights", pool=self._pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT genre, artist, language, SUM(preference_weight) AS weight
				FROM user_music_preferences
				WHERE user_id = $1
				GROUP BY genre, artist, language
				ORDER BY weight DESC
				""",
				user_id,
			)
		weights = PreferenceWeights()
		for row in rows:
			weight = float(row["weight"] or 0.0)
			if row["genre"]:
				weights.genres.append(WeightedName(row["genre"], weight))
			elif row["artist"]:
				weights.artists.append(WeightedName(row["artist"], weight))
			elif row["language"]:
				weights.languages.append(WeightedName(row["language"], weight))
		return weights

	async def location(self, user_id: str) -> Location | None:
		async with postgres.connection("signals.location", pool=self._pool) as conn:
			row = await conn.fetchrow(
				"SELECT latitude, longitude FROM user_locations WHERE user_id = $1",
				user_id,
			)
		if row is None:
			return None
		return Location(latitude=float(row["latitude"]), longitude=float(row["longitude"]))

	async def dating_preferences(self, user_id: str) -> DatingPreferences:
		async with postgres.connection("signals.preferences", pool=self._pool) as conn:
			row = await conn.fetchrow(
				"""
				SELECT preferred_gender, min_age, max_age, max_distance, is_visible
				FROM user_preferences
				WHERE user_id = $1
				""",
				user_id,
			)
		if row is None:
			raise PreferencesMissing()
		defaults = DatingPreferences()
		return DatingPreferences(
			preferred_gender=row["preferred_gender"],
			min_age=int(row["min_age"]) if row["min_age"] is not None else defaults.min_age,
			max_age=int(row["max_age"]) if row["max_age"] is not None else defaults.max_age,
			max_distance_km=float(row["max_distance"]) if row["max_distance"] is not None else defaults.max_distance_km,
			is_visible=bool(row["is_visible"]) if row["is_visible"] is not None else True,
		)

	async def song_metadata(self, song_ids: Iterable[str]) -> dict[str, SongMetadata]:
		ids = list(dict.fromkeys(str(song_id) for song_id in song_ids if song_id))
		if not ids:
			return {}
		async with postgres.connection("signals.songs", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"SELECT {SONG_COLUMNS} FROM songs WHERE song_id = ANY($1::varchar[])",
				ids,
			)
		return {str(row["song_id"]): row_to_song(row) for row in rows}

	async def candidate_pool(
		self,
		user_id: str,
		*,
		min_lat: float,
		max_lat: float,
		min_lon: float,
		max_lon: float,
	) -> list[CandidateRow]:
		async with postgres.connection("signals.candidate_pool", pool=self._pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT u.user_id, u.gender, u.birth_date, ul.latitude, ul.longitude,
				       COALESCE(up.is_visible, TRUE) AS is_visible
				FROM users u
				JOIN user_locations ul ON ul.user_id = u.user_id
				LEFT JOIN user_preferences up ON up.user_id = u.user_id
				WHERE u.user_id <> $1
				  AND ul.latitude BETWEEN $2 AND $3
				  AND ul.longitude BETWEEN $4 AND $5
				""",
				user_id,
				min_lat,
				max_lat,
				min_lon,
				max_lon,
			)
		return [
			CandidateRow(
				user_id=str(row["user_id"]),
				latitude=float(row["latitude"]),
				longitude=float(row["longitude"]),
				gender=row["gender"],
				birth_date=row["birth_date"],
				is_visible=bool(row["is_visible"]),
			)
			for row in rows
		]


__all__ = ["PostgresSignalStore", "SONG_COLUMNS", "row_to_song"]
