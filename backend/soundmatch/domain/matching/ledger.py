"""Durable record of pairwise scores and the like/pass state of each pair."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Mapping, Protocol, Sequence

from soundmatch.domain.matching.exceptions import InvalidMatchAction, MatchNotFound, SelfMatch
from soundmatch.domain.matching.models import MatchAction, MatchRecord, MatchStats, MatchStatus, canonical_pair


def derive_status(actions: Mapping[str, MatchAction], current: MatchStatus) -> MatchStatus:
    """Pair status implied by the latest action of each side."""
    if MatchAction.PASSED in actions.values():
        return MatchStatus.UNMATCHED
    likes = sum(1 for action in actions.values() if action == MatchAction.LIKED)
    if likes >= 2:
        return MatchStatus.MATCHED
    if likes == 1:
        return MatchStatus.LIKED_BY_ONE
    return current


def parse_action(value: str | MatchAction) -> MatchAction:
    try:
        return MatchAction(value)
    except ValueError as exc:
        raise InvalidMatchAction() from exc


class MatchLedger(Protocol):
    """Storage contract for match rows. Pairs are always canonical."""

    async def upsert_score(self, user_id_1: str, user_id_2: str, score: float) -> MatchRecord:
        """Insert as pending or update the score; status is left alone on update."""
        ...

    async def get_match(self, user_a: str, user_b: str) -> MatchRecord | None:
        ...

    async def record_action(self, user_id: str, other_id: str, action: MatchAction) -> MatchRecord:
        ...

    async def list_matches(
        self,
        user_id: str,
        *,
        status: MatchStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[MatchRecord]:
        ...

    async def top_similar_users(self, user_id: str, *, min_score: float, limit: int) -> list[tuple[str, float]]:
        """Counterparts of `user_id` ordered by score descending."""
        ...

    async def stats(self, user_id: str) -> MatchStats:
        ...


class InMemoryMatchLedger(MatchLedger):
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], MatchRecord] = {}

    async def upsert_score(self, user_id_1: str, user_id_2: str, score: float) -> MatchRecord:
        if user_id_1 == user_id_2:
            raise SelfMatch()
        key = canonical_pair(user_id_1, user_id_2)
        now = datetime.now(timezone.utc)
        record = self.rows.get(key)
        if record is None:
            record = MatchRecord(
                user_id_1=key[0],
                user_id_2=key[1],
                match_score=score,
                status=MatchStatus.PENDING,
                match_id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
            )
            self.rows[key] = record
        else:
            record.match_score = score
            record.updated_at = now
        return record

    async def get_match(self, user_a: str, user_b: str) -> MatchRecord | None:
        return self.rows.get(canonical_pair(user_a, user_b))

    async def record_action(self, user_id: str, other_id: str, action: MatchAction) -> MatchRecord:
        record = await self.get_match(user_id, other_id)
        if record is None:
            raise MatchNotFound()
        record.actions[user_id] = parse_action(action)
        record.status = derive_status(record.actions, record.status)
        record.updated_at = datetime.now(timezone.utc)
        return record

    async def list_matches(
        self,
        user_id: str,
        *,
        status: MatchStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Sequence[MatchRecord]:
        rows = [
            r
            for r in self.rows.values()
            if user_id in (r.user_id_1, r.user_id_2) and (status is None or r.status == status)
        ]
        rows.sort(key=lambda r: (-r.match_score, r.other(user_id)))
        return rows[offset : offset + limit]

    async def top_similar_users(self, user_id: str, *, min_score: float, limit: int) -> list[tuple[str, float]]:
        rows = await self.list_matches(user_id, limit=len(self.rows))
        return [(r.other(user_id), r.match_score) for r in rows if r.match_score >= min_score][:limit]

    async def stats(self, user_id: str) -> MatchStats:
        rows = [r for r in self.rows.values() if user_id in (r.user_id_1, r.user_id_2)]
        actions = [r.actions[user_id] for r in rows if user_id in r.actions]
        return MatchStats(
            matched=sum(1 for r in rows if r.status == MatchStatus.MATCHED),
            pending=sum(1 for r in rows if r.status == MatchStatus.PENDING),
            liked=actions.count(MatchAction.LIKED),
            passed=actions.count(MatchAction.PASSED),
        )


__all__ = ["InMemoryMatchLedger", "MatchLedger", "derive_status", "parse_action"]
