"""Hard-constraint filtering of potential matches around a user."""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from soundmatch.domain import container
from soundmatch.domain.matching import geo
from soundmatch.domain.matching.exceptions import LocationMissing, PreferencesMissing
from soundmatch.domain.matching.models import Candidate
from soundmatch.domain.signals import CandidateRow, DatingPreferences, Location, SignalStore, UserProfile

_LOG = logging.getLogger(__name__)


def _gender_matches(preferred: Optional[str], gender: Optional[str]) -> bool:
    if preferred is None or not preferred.strip():
        return True
    if gender is None:
        return False
    return preferred.strip().lower() == gender.strip().lower()


def _age_in_range(row: CandidateRow, prefs: DatingPreferences, today: date) -> bool:
    age = UserProfile(user_id=row.user_id, birth_date=row.birth_date).age_on(today)
    if age is None:
        return False
    return prefs.min_age <= age <= prefs.max_age


class CandidateFilter:
    """Returns users satisfying every hard constraint, nearest first."""

    def __init__(
        self,
        *,
        store: SignalStore | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.store = store or container.get_signal_store()
        self._today = today or date.today

    async def resolve_preferences(self, user_id: str) -> DatingPreferences:
        try:
            return await self.store.dating_preferences(user_id)
        except PreferencesMissing:
            _LOG.debug("candidates.default_preferences", extra={"subject": user_id})
            return DatingPreferences()

    async def resolve_location(self, user_id: str) -> Location:
        location = await self.store.location(user_id)
        if location is None:
            raise LocationMissing()
        return location

    async def find_candidates(
        self,
        user_id: str,
        location: Location | None = None,
        preferences: DatingPreferences | None = None,
        limit: int = 50,
    ) -> list[Candidate]:
        if location is None:
            location = await self.resolve_location(user_id)
        if preferences is None:
            preferences = await self.resolve_preferences(user_id)
        if limit <= 0:
            return []
        min_lat, max_lat, min_lon, max_lon = geo.bounding_box(
            location.latitude, location.longitude, preferences.max_distance_km
        )
        rows = await self.store.candidate_pool(
            user_id,
            min_lat=min_lat,
            max_lat=max_lat,
            min_lon=min_lon,
            max_lon=max_lon,
        )
        today = self._today()
        matches: list[Candidate] = []
        for row in rows:
            if row.user_id == user_id or not row.is_visible:
                continue
            if not _gender_matches(preferences.preferred_gender, row.gender):
                continue
            if not _age_in_range(row, preferences, today):
                continue
            distance = geo.haversine_km(location.latitude, location.longitude, row.latitude, row.longitude)
            if distance > preferences.max_distance_km:
                continue
            matches.append(Candidate(user_id=row.user_id, distance_km=distance))
        matches.sort(key=lambda c: (c.distance_km, c.user_id))
        return matches[:limit]


__all__ = ["CandidateFilter"]
