"""PostgreSQL-backed listening history and preference writes."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg

from soundmatch.domain.listening.repository import DIMENSIONS, ListeningRepository
from soundmatch.infra import postgres


def _column(dimension: str) -> str:
	# Column names cannot be bound parameters; restrict to the known set
	if dimension not in DIMENSIONS:
		raise ValueError(f"unknown preference dimension: {dimension}")
	return dimension


class PostgresListeningRepository(ListeningRepository):
	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def record_play(self, user_id: str, song_id: str, played_at: datetime) -> None:
		async with postgres.connection("listening.record_play", pool=self._pool) as conn:
			await conn.execute(
				"""
				INSERT INTO user_music_history (user_id, song_id, play_count, last_played)
				VALUES ($1, $2, 1, $3)
				ON CONFLICT (user_id, song_id)
				DO UPDATE SET play_count = user_music_history.play_count + 1, last_played = EXCLUDED.last_played
				""",
				user_id,
				song_id,
				played_at,
			)

	async def add_weight(self, user_id: str, dimension: str, name: str, delta: float) -> None:
		column = _column(dimension)
		async with postgres.connection("listening.add_weight", pool=self._pool) as conn:
			await conn.execute(
				f"""
				INSERT INTO user_music_preferences (user_id, {column}, preference_weight, updated_at)
				VALUES ($1, $2, $3, NOW())
				ON CONFLICT (user_id, {column}) WHERE {column} IS NOT NULL
				DO UPDATE SET
					preference_weight = user_music_preferences.preference_weight + EXCLUDED.preference_weight,
					updated_at = NOW()
				""",
				user_id,
				name,
				max(0.0, float(delta)),
			)

	async def raise_weight_floor(self, user_id: str, dimension: str, name: str, floor: float) -> None:
		column = _column(dimension)
		async with postgres.connection("listening.raise_floor", pool=self._pool) as conn:
			await conn.execute(
				f"""
				INSERT INTO user_music_preferences (user_id, {column}, preference_weight, updated_at)
				VALUES ($1, $2, $3, NOW())
				ON CONFLICT (user_id, {column}) WHERE {column} IS NOT NULL
				DO UPDATE SET
					preference_weight = GREATEST(user_music_preferences.preference_weight, EXCLUDED.preference_weight),
					updated_at = NOW()
				""",
				user_id,
				name,
				float(floor),
			)

	async def delete_preferences(self, user_id: str) -> int:
		async with postgres.connection("listening.delete_preferences", pool=self._pool) as conn:
			status = await conn.execute("DELETE FROM user_music_preferences WHERE user_id = $1", user_id)
		# asyncpg returns the command tag, e.g. "DELETE 3"
		try:
			return int(str(status).rsplit(" ", 1)[-1])
		except ValueError:
			return 0


__all__ = ["PostgresListeningRepository"]
