"""Pydantic schemas for listening events and explicit music preferences."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ListenEventIn(BaseModel):
	"""Either a full catalog song object or a bare song id."""

	song: Optional[Dict[str, Any]] = None
	song_id: Optional[str] = Field(default=None, min_length=1)
	duration_seconds: float = Field(default=0.0, ge=0.0)

	@model_validator(mode="after")
	def _require_song(self) -> "ListenEventIn":
		if self.song is None and self.song_id is None:
			raise ValueError("song or song_id is required")
		return self


class ListenResult(BaseModel):
	song_id: str
	recorded: bool
	weight: float = 0.0


class MusicPreferencesIn(BaseModel):
	genres: List[str] = Field(default_factory=list)
	artists: List[str] = Field(default_factory=list)
	languages: List[str] = Field(default_factory=list)


class PreferencesUpdated(BaseModel):
	updated: int


class PreferencesDeleted(BaseModel):
	deleted: int


__all__ = ["ListenEventIn", "ListenResult", "MusicPreferencesIn", "PreferencesDeleted", "PreferencesUpdated"]
