"""PostgreSQL-backed song repository."""

from __future__ import annotations

from typing import Collection, Optional, Sequence

import asyncpg

from soundmatch.domain.recommendations.sources import SIMILAR_ARTIST_POINTS, SIMILAR_GENRE_POINTS, SongRepository
from soundmatch.domain.signals import SongMetadata, WeightedName
from soundmatch.infra import postgres
from soundmatch.infra.signal_store import SONG_COLUMNS, row_to_song

_S_COLUMNS = ", ".join(f"s.{col.strip()}" for col in SONG_COLUMNS.split(","))


class PostgresSongRepository(SongRepository):
	"""Queries the local songs mirror joined with listening history."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def exists(self, song_id: str) -> bool:
		async with postgres.connection("songs.exists", pool=self._pool) as conn:
			found = await conn.fetchval("SELECT 1 FROM songs WHERE song_id = $1", song_id)
		return found is not None

	async def upsert(self, song: SongMetadata) -> None:
		async with postgres.connection("songs.upsert", pool=self._pool) as conn:
			await conn.execute(
				"""
				INSERT INTO songs (
					song_id, song_name, album, primary_artists, genre,
					release_year, language, image_url, media_url, created_at, updated_at
				)
				VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW(), NOW())
				ON CONFLICT (song_id) DO UPDATE SET
					song_name = COALESCE(EXCLUDED.song_name, songs.song_name),
					album = COALESCE(EXCLUDED.album, songs.album),
					primary_artists = COALESCE(EXCLUDED.primary_artists, songs.primary_artists),
					genre = COALESCE(EXCLUDED.genre, songs.genre),
					release_year = COALESCE(EXCLUDED.release_year, songs.release_year),
					language = COALESCE(EXCLUDED.language, songs.language),
					image_url = COALESCE(EXCLUDED.image_url, songs.image_url),
					media_url = COALESCE(EXCLUDED.media_url, songs.media_url),
					updated_at = NOW()
				""",
				song.song_id,
				song.name,
				song.album,
				song.primary_artists,
				song.genre,
				song.release_year[:4] if song.release_year else None,
				song.language,
				song.image_url,
				song.media_url,
			)

	async def by_genre(self, genre: str, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
		async with postgres.connection("songs.by_genre", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_S_COLUMNS}, COUNT(DISTINCT h.user_id) AS listeners
				FROM songs s
				LEFT JOIN user_music_history h ON h.song_id = s.song_id
				WHERE lower(s.genre) = lower($1)
				  AND NOT (s.song_id = ANY($2::varchar[]))
				GROUP BY s.song_id
				ORDER BY listeners DESC, s.song_name
				LIMIT $3
				""",
				genre,
				list(exclude),
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def popular(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
		async with postgres.connection("songs.popular", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_S_COLUMNS}, COUNT(DISTINCT h.user_id) AS listener_count
				FROM songs s
				JOIN user_music_history h ON h.song_id = s.song_id
				WHERE NOT (s.song_id = ANY($1::varchar[]))
				GROUP BY s.song_id
				ORDER BY listener_count DESC, s.song_name
				LIMIT $2
				""",
				list(exclude),
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def random(self, *, limit: int, exclude: Collection[str] = ()) -> list[SongMetadata]:
		async with postgres.connection("songs.random", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {SONG_COLUMNS} FROM songs
				WHERE NOT (song_id = ANY($1::varchar[]))
				ORDER BY RANDOM()
				LIMIT $2
				""",
				list(exclude),
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def by_preferences(
		self,
		user_id: str,
		*,
		artists: Sequence[WeightedName],
		genres: Sequence[WeightedName],
		limit: int,
	) -> list[SongMetadata]:
		if not artists and not genres:
			return []
		async with postgres.connection("songs.by_preferences", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_S_COLUMNS},
				       COALESCE(g.weight, 0) + COALESCE(a.weight, 0) AS affinity
				FROM songs s
				LEFT JOIN unnest($2::text[], $3::float8[]) AS g(name, weight) ON g.name = s.genre
				LEFT JOIN LATERAL (
					SELECT SUM(pa.weight) AS weight
					FROM unnest($4::text[], $5::float8[]) AS pa(name, weight)
					WHERE pa.name IN (
						SELECT trim(credit) FROM unnest(string_to_array(s.primary_artists, ',')) AS credit
					)
				) a ON TRUE
				WHERE (g.name IS NOT NULL OR a.weight IS NOT NULL)
				  AND NOT EXISTS (
					SELECT 1 FROM user_music_history mine
					WHERE mine.user_id = $1 AND mine.song_id = s.song_id
				  )
				ORDER BY affinity DESC, s.song_name
				LIMIT $6
				""",
				user_id,
				[g.name for g in genres],
				[float(g.weight) for g in genres],
				[a.name for a in artists],
				[float(a.weight) for a in artists],
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def heard_by(self, user_ids: Sequence[str], *, exclude_user: str, limit: int) -> list[SongMetadata]:
		if not user_ids:
			return []
		async with postgres.connection("songs.heard_by", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_S_COLUMNS}
				FROM user_music_history h
				JOIN songs s ON s.song_id = h.song_id
				WHERE h.user_id = ANY($2::uuid[])
				  AND NOT EXISTS (
					SELECT 1 FROM user_music_history mine
					WHERE mine.user_id = $1 AND mine.song_id = h.song_id
				  )
				GROUP BY s.song_id
				ORDER BY COUNT(DISTINCT h.user_id) DESC, SUM(h.play_count) DESC, s.song_name
				LIMIT $3
				""",
				exclude_user,
				list(user_ids),
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def heard_song_ids(self, user_id: str) -> set[str]:
		async with postgres.connection("songs.heard_ids", pool=self._pool) as conn:
			rows = await conn.fetch("SELECT song_id FROM user_music_history WHERE user_id = $1", user_id)
		return {str(row["song_id"]) for row in rows}

	async def common_songs(self, user_a: str, user_b: str, *, limit: int) -> list[SongMetadata]:
		async with postgres.connection("songs.common", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_S_COLUMNS}
				FROM user_music_history a
				JOIN user_music_history b ON b.song_id = a.song_id AND b.user_id = $2
				JOIN songs s ON s.song_id = a.song_id
				WHERE a.user_id = $1
				ORDER BY a.play_count + b.play_count DESC, s.song_name
				LIMIT $3
				""",
				user_a,
				user_b,
				limit,
			)
		return [row_to_song(row) for row in rows]

	async def similar_songs(self, song_id: str, *, limit: int) -> list[SongMetadata]:
		async with postgres.connection("songs.similar", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				WITH seed AS (
					SELECT primary_artists, genre FROM songs WHERE song_id = $1
				),
				seed_artists AS (
					SELECT lower(btrim(a)) AS artist
					FROM seed, unnest(string_to_array(seed.primary_artists, ',')) AS a
					WHERE btrim(a) <> ''
				),
				scored AS (
					SELECT songs.*,
						CASE WHEN EXISTS (
							SELECT 1 FROM seed_artists sa
							WHERE position(sa.artist IN lower(COALESCE(songs.primary_artists, ''))) > 0
						) THEN $3 ELSE 0 END
						+ CASE WHEN seed.genre IS NOT NULL AND songs.genre = seed.genre THEN $4 ELSE 0 END AS similarity
					FROM songs CROSS JOIN seed
					WHERE songs.song_id <> $1
				)
				SELECT {_S_COLUMNS}
				FROM scored s
				WHERE s.similarity > 0
				ORDER BY s.similarity DESC, s.song_name, s.song_id
				LIMIT $2
				""",
				song_id,
				limit,
				SIMILAR_ARTIST_POINTS,
				SIMILAR_GENRE_POINTS,
			)
		return [row_to_song(row) for row in rows]


__all__ = ["PostgresSongRepository"]
