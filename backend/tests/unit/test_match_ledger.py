import pytest

from soundmatch.domain.matching.exceptions import InvalidMatchAction, MatchNotFound
from soundmatch.domain.matching.ledger import InMemoryMatchLedger, derive_status, parse_action
from soundmatch.domain.matching.models import MatchAction, MatchStatus, canonical_pair


def test_canonical_pair_orders_by_string():
    assert canonical_pair("b", "a") == ("a", "b")
    assert canonical_pair("10", "9") == ("10", "9")


def test_derive_status_transitions():
    assert derive_status({}, MatchStatus.PENDING) is MatchStatus.PENDING
    assert derive_status({"a": MatchAction.LIKED}, MatchStatus.PENDING) is MatchStatus.LIKED_BY_ONE
    both = {"a": MatchAction.LIKED, "b": MatchAction.LIKED}
    assert derive_status(both, MatchStatus.LIKED_BY_ONE) is MatchStatus.MATCHED
    passed = {"a": MatchAction.LIKED, "b": MatchAction.PASSED}
    assert derive_status(passed, MatchStatus.LIKED_BY_ONE) is MatchStatus.UNMATCHED


def test_parse_action_rejects_unknown():
    assert parse_action("liked") is MatchAction.LIKED
    with pytest.raises(InvalidMatchAction):
        parse_action("superlike")


@pytest.mark.asyncio
async def test_upsert_keeps_one_row_and_status():
    ledger = InMemoryMatchLedger()
    await ledger.upsert_score("b", "a", 40.0)
    await ledger.record_action("a", "b", MatchAction.LIKED)
    record = await ledger.upsert_score("a", "b", 72.5)

    assert len(ledger.rows) == 1
    assert record.match_score == 72.5
    assert record.status is MatchStatus.LIKED_BY_ONE


@pytest.mark.asyncio
async def test_mutual_like_matches():
    ledger = InMemoryMatchLedger()
    await ledger.upsert_score("a", "b", 80.0)

    await ledger.record_action("a", "b", MatchAction.LIKED)
    record = await ledger.record_action("b", "a", MatchAction.LIKED)

    assert record.status is MatchStatus.MATCHED


@pytest.mark.asyncio
async def test_action_on_unknown_pair_raises():
    with pytest.raises(MatchNotFound):
        await InMemoryMatchLedger().record_action("a", "b", MatchAction.LIKED)


@pytest.mark.asyncio
async def test_top_similar_users_respects_threshold():
    ledger = InMemoryMatchLedger()
    await ledger.upsert_score("me", "x", 90.0)
    await ledger.upsert_score("y", "me", 65.0)
    await ledger.upsert_score("me", "z", 59.9)

    similar = await ledger.top_similar_users("me", min_score=60, limit=20)

    assert similar == [("x", 90.0), ("y", 65.0)]


@pytest.mark.asyncio
async def test_stats_count_statuses_and_own_actions():
    ledger = InMemoryMatchLedger()
    for other in ("b", "c", "d", "e"):
        await ledger.upsert_score("a", other, 70.0)
    await ledger.record_action("a", "b", MatchAction.LIKED)
    await ledger.record_action("b", "a", MatchAction.LIKED)
    await ledger.record_action("a", "c", MatchAction.LIKED)
    await ledger.record_action("a", "d", MatchAction.PASSED)

    stats = await ledger.stats("a")

    assert (stats.matched, stats.pending, stats.liked, stats.passed) == (1, 1, 2, 1)
    assert stats.match_rate == 50.0


@pytest.mark.asyncio
async def test_stats_without_likes_have_zero_rate():
    stats = await InMemoryMatchLedger().stats("nobody")

    assert stats.match_rate == 0.0
    assert stats.pending == 0
