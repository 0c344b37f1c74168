"""Pydantic schemas for song and user recommendations."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from soundmatch.domain.signals import SongMetadata

RecommendationType = Literal[
	"genre-based",
	"popular",
	"trending",
	"random",
	"content-based",
	"collaborative",
	"similar",
]


class SongRecommendation(BaseModel):
	song_id: str
	type: RecommendationType
	name: Optional[str] = None
	album: Optional[str] = None
	artists: Optional[str] = None
	genre: Optional[str] = None
	image_url: Optional[str] = None
	media_url: Optional[str] = None

	@classmethod
	def from_song(cls, song: SongMetadata, kind: RecommendationType) -> "SongRecommendation":
		return cls(
			song_id=song.song_id,
			type=kind,
			name=song.name,
			album=song.album,
			artists=song.primary_artists,
			genre=song.genre,
			image_url=song.image_url,
			media_url=song.media_url,
		)


class UserRecommendation(BaseModel):
	user_id: str
	score: float = Field(ge=0.0, le=100.0)
	music_score: float = Field(ge=0.0, le=100.0)
	distance_km: float = Field(ge=0.0)


class SongRecommendationsResponse(BaseModel):
	recommendations: List[SongRecommendation]


class UserRecommendationsResponse(BaseModel):
	recommendations: List[UserRecommendation]


__all__ = [
	"RecommendationType",
	"SongRecommendation",
	"SongRecommendationsResponse",
	"UserRecommendation",
	"UserRecommendationsResponse",
]
