"""Domain-level exceptions for compatibility scoring and recommendations."""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching engine errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class LocationMissing(MatchingError):
    """The requesting user has no stored location."""

    reason = "location_missing"
    message = "Share your location to see people near you."


class PreferencesMissing(MatchingError):
    """No dating preferences row exists; callers substitute defaults."""

    reason = "preferences_missing"


class CandidateScoringFailed(MatchingError):
    reason = "candidate_scoring_failed"

    def __init__(self, user_id: str, candidate_id: str) -> None:
        super().__init__(self.reason)
        self.user_id = user_id
        self.candidate_id = candidate_id


class UpstreamCatalogUnavailable(MatchingError):
    """The external catalog errored or timed out."""

    reason = "catalog_unavailable"


class MatchNotFound(MatchingError):
    reason = "match_not_found"


class InvalidMatchAction(MatchingError):
    reason = "invalid_action"


class SelfMatch(MatchingError):
    """A user cannot be scored or matched against themselves."""

    reason = "self_match"
