"""PostgreSQL-backed match ledger."""

from __future__ import annotations

from typing import Optional, Sequence

import asyncpg

from soundmatch.domain.matching.exceptions import MatchNotFound, SelfMatch
from soundmatch.domain.matching.ledger import MatchLedger, derive_status, parse_action
from soundmatch.domain.matching.models import MatchAction, MatchRecord, MatchStats, MatchStatus, canonical_pair
from soundmatch.infra import postgres

_MATCH_COLUMNS = "match_id, user_id_1, user_id_2, match_score, status, created_at, updated_at"


def _row_to_match(row: asyncpg.Record) -> MatchRecord:
	return MatchRecord(
		user_id_1=str(row["user_id_1"]),
		user_id_2=str(row["user_id_2"]),
		match_score=float(row["match_score"]),
		status=MatchStatus(str(row["status"])),
		match_id=str(row["match_id"]),
		created_at=row["created_at"],
		updated_at=row["updated_at"],
	)


class PostgresMatchLedger(MatchLedger):
	"""Persists match rows and per-user actions using asyncpg."""

	def __init__(self, pool: Optional[asyncpg.Pool] = None) -> None:
		self._pool = pool

	async def upsert_score(self, user_id_1: str, user_id_2: str, score: float) -> MatchRecord:
		if user_id_1 == user_id_2:
			raise SelfMatch()
		low, high = canonical_pair(user_id_1, user_id_2)
		async with postgres.connection("ledger.upsert_score", pool=self._pool) as conn:
			row = await conn.fetchrow(
				f"""
				INSERT INTO matches (user_id_1, user_id_2, match_score, status, created_at, updated_at)
				VALUES ($1, $2, $3, 'pending', NOW(), NOW())
				ON CONFLICT (user_id_1, user_id_2)
				DO UPDATE SET match_score = EXCLUDED.match_score, updated_at = NOW()
				RETURNING {_MATCH_COLUMNS}
				""",
				low,
				high,
				score,
			)
		return _row_to_match(row)

	async def get_match(self, user_a: str, user_b: str) -> MatchRecord | None:
		low, high = canonical_pair(user_a, user_b)
		async with postgres.connection("ledger.get_match", pool=self._pool) as conn:
			row = await conn.fetchrow(
				f"SELECT {_MATCH_COLUMNS} FROM matches WHERE user_id_1 = $1 AND user_id_2 = $2",
				low,
				high,
			)
			if row is None:
				return None
			record = _row_to_match(row)
			actions = await conn.fetch(
				"SELECT user_id, status FROM user_match_actions WHERE match_id = $1",
				record.match_id,
			)
		record.actions = {str(a["user_id"]): MatchAction(str(a["status"])) for a in actions}
		return record

	async def record_action(self, user_id: str, other_id: str, action: MatchAction) -> MatchRecord:
		action = parse_action(action)
		low, high = canonical_pair(user_id, other_id)
		async with postgres.connection("ledger.record_action", pool=self._pool) as conn:
			async with conn.transaction():
				row = await conn.fetchrow(
					f"""
					SELECT {_MATCH_COLUMNS} FROM matches
					WHERE user_id_1 = $1 AND user_id_2 = $2
					FOR UPDATE
					""",
					low,
					high,
				)
				if row is None:
					raise MatchNotFound()
				record = _row_to_match(row)
				await conn.execute(
					"""
					INSERT INTO user_match_actions (match_id, user_id, status, created_at, updated_at)
					VALUES ($1, $2, $3, NOW(), NOW())
					ON CONFLICT (match_id, user_id)
					DO UPDATE SET status = EXCLUDED.status, updated_at = NOW()
					""",
					record.match_id,
					user_id,
					action.value,
				)
				actions = await conn.fetch(
					"SELECT user_id, status FROM user_match_actions WHERE match_id = $1",
					record.match_id,
				)
				record.actions = {str(a["user_id"]): MatchAction(str(a["status"])) for a in actions}
				status = derive_status(record.actions, record.status)
				if status != record.status:
					updated = await conn.fetchrow(
						f"""
						UPDATE matches SET status = $2, updated_at = NOW()
						WHERE match_id = $1
						RETURNING {_MATCH_COLUMNS}
						""",
						record.match_id,
						status.value,
					)
					refreshed = _row_to_match(updated)
					refreshed.actions = record.actions
					record = refreshed
		return record

	async def list_matches(
		self,
		user_id: str,
		*,
		status: MatchStatus | None = None,
		limit: int = 50,
		offset: int = 0,
	) -> Sequence[MatchRecord]:
		async with postgres.connection("ledger.list_matches", pool=self._pool) as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_MATCH_COLUMNS} FROM matches
				WHERE (user_id_1 = $1 OR user_id_2 = $1)
				  AND ($2::varchar IS NULL OR status = $2)
				ORDER BY match_score DESC, updated_at DESC
				LIMIT $3 OFFSET $4
				""",
				user_id,
				status.value if status is not None else None,
				limit,
				offset,
			)
		return [_row_to_match(row) for row in rows]

	async def top_similar_users(self, user_id: str, *, min_score: float, limit: int) -> list[tuple[str, float]]:
		async with postgres.connection("ledger.top_similar", pool=self._pool) as conn:
			rows = await conn.fetch(
				"""
				SELECT CASE WHEN user_id_1 = $1 THEN user_id_2 ELSE user_id_1 END AS other_id, match_score
				FROM matches
				WHERE (user_id_1 = $1 OR user_id_2 = $1) AND match_score >= $2
				ORDER BY match_score DESC
				LIMIT $3
				""",
				user_id,
				min_score,
				limit,
			)
		return [(str(row["other_id"]), float(row["match_score"])) for row in rows]

	async def stats(self, user_id: str) -> MatchStats:
		async with postgres.connection("ledger.stats", pool=self._pool) as conn:
			row = await conn.fetchrow(
				"""
				SELECT
					(SELECT COUNT(*) FROM matches
					 WHERE (user_id_1 = $1 OR user_id_2 = $1) AND status = 'matched') AS matched,
					(SELECT COUNT(*) FROM matches
					 WHERE (user_id_1 = $1 OR user_id_2 = $1) AND status = 'pending') AS pending,
					(SELECT COUNT(*) FROM user_match_actions WHERE user_id = $1 AND status = 'liked') AS liked,
					(SELECT COUNT(*) FROM user_match_actions WHERE user_id = $1 AND status = 'passed') AS passed
				""",
				user_id,
			)
		return MatchStats(
			matched=int(row["matched"]),
			pending=int(row["pending"]),
			liked=int(row["liked"]),
			passed=int(row["passed"]),
		)


__all__ = ["PostgresMatchLedger"]
