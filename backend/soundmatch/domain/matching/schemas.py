"""Pydantic schemas for the matching API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from soundmatch.domain.matching.models import Candidate, MatchRecord, MatchStats
from soundmatch.domain.signals import SongMetadata


class MatchScoreOut(BaseModel):
	user_id: str
	other_id: str
	score: float = Field(ge=0.0, le=100.0)
	cached: bool


class CandidateOut(BaseModel):
	user_id: str
	distance_km: float

	@classmethod
	def from_candidate(cls, candidate: Candidate) -> "CandidateOut":
		return cls(user_id=candidate.user_id, distance_km=round(candidate.distance_km, 2))


class CandidatesResponse(BaseModel):
	items: List[CandidateOut]


class MatchActionIn(BaseModel):
	action: Literal["liked", "passed"]


class MatchOut(BaseModel):
	match_id: Optional[str] = None
	user_id_1: str
	user_id_2: str
	match_score: float
	status: Literal["pending", "liked-by-one", "matched", "unmatched"]
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: MatchRecord) -> "MatchOut":
		return cls(
			match_id=record.match_id,
			user_id_1=record.user_id_1,
			user_id_2=record.user_id_2,
			match_score=record.match_score,
			status=record.status.value,
			updated_at=record.updated_at,
		)


class SongOut(BaseModel):
	song_id: str
	name: Optional[str] = None
	album: Optional[str] = None
	artists: Optional[str] = None
	genre: Optional[str] = None
	image_url: Optional[str] = None

	@classmethod
	def from_song(cls, song: SongMetadata) -> "SongOut":
		return cls(
			song_id=song.song_id,
			name=song.name,
			album=song.album,
			artists=song.primary_artists,
			genre=song.genre,
			image_url=song.image_url,
		)


class CommonSongsOut(BaseModel):
	other_id: str
	songs: List[SongOut]


class MatchListResponse(BaseModel):
	items: List[MatchOut]


class RecalculateOut(BaseModel):
	scheduled: bool


class MatchStatsOut(BaseModel):
	matched: int
	pending: int
	liked: int
	passed: int
	match_rate: float = Field(ge=0.0)

	@classmethod
	def from_stats(cls, stats: MatchStats) -> "MatchStatsOut":
		return cls(
			matched=stats.matched,
			pending=stats.pending,
			liked=stats.liked,
			passed=stats.passed,
			match_rate=stats.match_rate,
		)


__all__ = [
	"CandidateOut",
	"CandidatesResponse",
	"CommonSongsOut",
	"MatchActionIn",
	"MatchListResponse",
	"MatchOut",
	"MatchScoreOut",
	"MatchStatsOut",
	"RecalculateOut",
	"SongOut",
]
