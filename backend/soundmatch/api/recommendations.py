"""Song and user recommendation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from soundmatch.api.deps import get_current_user_id
from soundmatch.domain.recommendations.schemas import SongRecommendationsResponse, UserRecommendationsResponse
from soundmatch.domain.recommendations.service import RecommendationComposer

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def get_composer() -> RecommendationComposer:
	return RecommendationComposer()


@router.get("/songs", response_model=SongRecommendationsResponse)
async def song_recommendations(
	*,
	limit: int = Query(default=20, ge=1, le=100),
	user_id: str = Depends(get_current_user_id),
	composer: RecommendationComposer = Depends(get_composer),
) -> SongRecommendationsResponse:
	return SongRecommendationsResponse(recommendations=await composer.recommend_songs(user_id, limit))


@router.get("/users", response_model=UserRecommendationsResponse)
async def user_recommendations(
	*,
	limit: int = Query(default=20, ge=1, le=100),
	user_id: str = Depends(get_current_user_id),
	composer: RecommendationComposer = Depends(get_composer),
) -> UserRecommendationsResponse:
	return UserRecommendationsResponse(recommendations=await composer.recommend_users(user_id, limit))


@router.get("/similar/{song_id}", response_model=SongRecommendationsResponse)
async def similar_songs(
	song_id: str,
	limit: int = Query(default=10, ge=1, le=50),
	composer: RecommendationComposer = Depends(get_composer),
) -> SongRecommendationsResponse:
	return SongRecommendationsResponse(recommendations=await composer.similar_songs(song_id, limit))


@router.post("/refresh", status_code=status.HTTP_204_NO_CONTENT)
async def refresh_recommendations(
	user_id: str = Depends(get_current_user_id),
	composer: RecommendationComposer = Depends(get_composer),
) -> None:
	await composer.invalidate(user_id)
