"""Listening event and explicit music preference endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from soundmatch.api.deps import get_current_user_id
from soundmatch.domain.listening.schemas import (
	ListenEventIn,
	ListenResult,
	MusicPreferencesIn,
	PreferencesDeleted,
	PreferencesUpdated,
)
from soundmatch.domain.listening.service import ListeningService

router = APIRouter(prefix="/listening", tags=["listening"])


def get_listening_service() -> ListeningService:
	return ListeningService()


@router.post("/events", response_model=ListenResult, status_code=status.HTTP_202_ACCEPTED)
async def listen_event(
	payload: ListenEventIn,
	user_id: str = Depends(get_current_user_id),
	service: ListeningService = Depends(get_listening_service),
) -> ListenResult:
	song = payload.song if payload.song is not None else payload.song_id
	try:
		return await service.record_listen(user_id, song, payload.duration_seconds)
	except ValueError as exc:
		raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="invalid_song") from exc


@router.put("/preferences", response_model=PreferencesUpdated)
async def set_preferences(
	payload: MusicPreferencesIn,
	user_id: str = Depends(get_current_user_id),
	service: ListeningService = Depends(get_listening_service),
) -> PreferencesUpdated:
	updated = await service.set_music_preferences(
		user_id,
		genres=payload.genres,
		artists=payload.artists,
		languages=payload.languages,
	)
	return PreferencesUpdated(updated=updated)


@router.delete("/preferences", response_model=PreferencesDeleted)
async def delete_preferences(
	user_id: str = Depends(get_current_user_id),
	service: ListeningService = Depends(get_listening_service),
) -> PreferencesDeleted:
	return PreferencesDeleted(deleted=await service.delete_music_preferences(user_id))
