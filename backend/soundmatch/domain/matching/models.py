"""Domain models for pairwise matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MatchStatus(str, Enum):
    """Lifecycle of a pair in the match ledger."""

    PENDING = "pending"
    LIKED_BY_ONE = "liked-by-one"
    MATCHED = "matched"
    UNMATCHED = "unmatched"


class MatchAction(str, Enum):
    LIKED = "liked"
    PASSED = "passed"


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Order a pair so (A, B) and (B, A) address the same record."""
    a, b = str(user_a), str(user_b)
    return (a, b) if a <= b else (b, a)


@dataclass(slots=True, frozen=True)
class Candidate:
    user_id: str
    distance_km: float


@dataclass(slots=True)
class MatchRecord:
    user_id_1: str
    user_id_2: str
    match_score: float
    status: MatchStatus = MatchStatus.PENDING
    match_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    actions: dict[str, MatchAction] = field(default_factory=dict)

    def other(self, user_id: str) -> str:
        return self.user_id_2 if user_id == self.user_id_1 else self.user_id_1


@dataclass(slots=True, frozen=True)
class ComponentScore:
    """One weighted signal: the raw similarity and the points it contributed."""

    name: str
    weight: float
    similarity: float
    evaluated: bool

    @property
    def points(self) -> float:
        return self.weight * self.similarity if self.evaluated else 0.0


@dataclass(slots=True)
class ScoreBreakdown:
    components: list[ComponentScore]

    @property
    def evaluated_weight(self) -> float:
        return sum(c.weight for c in self.components if c.evaluated)

    @property
    def points(self) -> float:
        return sum(c.points for c in self.components)

    @property
    def score(self) -> float:
        total = self.evaluated_weight
        if total <= 0:
            return 0.0
        raw = self.points / total * 100.0
        return round(max(0.0, min(100.0, raw)), 1)

    def component(self, name: str) -> ComponentScore:
        for item in self.components:
            if item.name == name:
                return item
        raise KeyError(name)


@dataclass(slots=True, frozen=True)
class ScoreResult:
    score: float
    cached: bool


@dataclass(slots=True, frozen=True)
class MatchStats:
    """Pair counts by status plus the user's own likes and passes."""

    matched: int = 0
    pending: int = 0
    liked: int = 0
    passed: int = 0

    @property
    def match_rate(self) -> float:
        """Matches per like as a percentage, one decimal."""
        if self.liked <= 0:
            return 0.0
        return round(self.matched / self.liked * 100.0, 1)
