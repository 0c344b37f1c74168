"""Match score, candidate and action endpoints."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status

from soundmatch.api.deps import get_current_user_id
from soundmatch.domain.matching.schemas import (
	CandidateOut,
	CandidatesResponse,
	CommonSongsOut,
	MatchActionIn,
	MatchListResponse,
	MatchOut,
	MatchScoreOut,
	MatchStatsOut,
	RecalculateOut,
	SongOut,
)
from soundmatch.domain.matching.service import MatchService

router = APIRouter(prefix="/matches", tags=["matches"])


def get_match_service() -> MatchService:
	return MatchService()


@router.get("", response_model=MatchListResponse)
async def list_matches(
	*,
	status_filter: Optional[Literal["pending", "liked-by-one", "matched", "unmatched"]] = Query(default=None, alias="status"),
	limit: int = Query(default=50, ge=1, le=100),
	offset: int = Query(default=0, ge=0),
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> MatchListResponse:
	records = await service.list_matches(user_id, status=status_filter, limit=limit, offset=offset)
	return MatchListResponse(items=[MatchOut.from_record(record) for record in records])


@router.get("/score/{other_id}", response_model=MatchScoreOut)
async def match_score(
	other_id: str,
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> MatchScoreOut:
	result = await service.get_match_score(user_id, other_id)
	return MatchScoreOut(user_id=user_id, other_id=other_id, score=result.score, cached=result.cached)


@router.get("/candidates", response_model=CandidatesResponse)
async def match_candidates(
	*,
	limit: int = Query(default=20, ge=1, le=100),
	max_distance_km: Optional[float] = Query(default=None, gt=0),
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> CandidatesResponse:
	candidates = await service.get_candidates(user_id, limit=limit, max_distance_km=max_distance_km)
	return CandidatesResponse(items=[CandidateOut.from_candidate(c) for c in candidates])


@router.post("/recalculate", response_model=RecalculateOut, status_code=status.HTTP_202_ACCEPTED)
async def match_recalculate(
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> RecalculateOut:
	scheduled = await service.request_recalculation(user_id)
	return RecalculateOut(scheduled=scheduled)


@router.get("/stats", response_model=MatchStatsOut)
async def match_stats(
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> MatchStatsOut:
	return MatchStatsOut.from_stats(await service.stats(user_id))


@router.get("/common/{other_id}", response_model=CommonSongsOut)
async def match_common_songs(
	other_id: str,
	limit: int = Query(default=20, ge=1, le=100),
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> CommonSongsOut:
	songs = await service.common_songs(user_id, other_id, limit=limit)
	return CommonSongsOut(other_id=other_id, songs=[SongOut.from_song(song) for song in songs])


@router.get("/{other_id}", response_model=MatchOut)
async def match_detail(
	other_id: str,
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> MatchOut:
	return MatchOut.from_record(await service.get_match(user_id, other_id))


@router.post("/{other_id}/action", response_model=MatchOut)
async def match_action(
	other_id: str,
	payload: MatchActionIn,
	user_id: str = Depends(get_current_user_id),
	service: MatchService = Depends(get_match_service),
) -> MatchOut:
	record = await service.record_action(user_id, other_id, payload.action)
	return MatchOut.from_record(record)
