from datetime import datetime, timezone

import pytest

from soundmatch.domain.matching import similarity
from soundmatch.domain.matching.exceptions import SelfMatch
from soundmatch.domain.matching.ledger import InMemoryMatchLedger
from soundmatch.domain.matching.similarity import MusicProfile, SimilarityScorer, compute_breakdown
from soundmatch.domain.signals import InMemorySignalStore, ListeningEntry, SongMetadata


def _at(hour: int) -> datetime:
    return datetime(2024, 5, 1, hour, 15, tzinfo=timezone.utc)


def _seed_rich_pair(store: InMemorySignalStore) -> None:
    store.add_song(SongMetadata(song_id="s1", name="One", primary_artists="Arijit Singh, Shreya Ghoshal", release_year="2015", genre="pop"))
    store.add_song(SongMetadata(song_id="s2", name="Two", primary_artists="Arijit Singh", release_year="2018", genre="pop"))
    store.add_song(SongMetadata(song_id="s3", name="Three", primary_artists="A. R. Rahman", release_year="1998", genre="classical"))
    store.add_song(SongMetadata(song_id="s4", name="Four", primary_artists="Lata Mangeshkar", release_year="1975", genre="classical"))
    store.add_play("alice", "s1", play_count=3, last_played=_at(21))
    store.add_play("alice", "s2", play_count=1, last_played=_at(22))
    store.add_play("alice", "s3", play_count=2, last_played=_at(8))
    store.add_play("bob", "s1", play_count=1, last_played=_at(21))
    store.add_play("bob", "s3", play_count=4, last_played=_at(9))
    store.add_play("bob", "s4", play_count=2, last_played=_at(9))
    store.set_weight("alice", "genre", "pop", 3.0)
    store.set_weight("alice", "genre", "classical", 1.0)
    store.set_weight("bob", "genre", "classical", 2.0)
    store.set_weight("bob", "genre", "pop", 0.5)


def test_jaccard_scenario_contributes_a_third_of_the_song_weight():
    a = MusicProfile(user_id="a", history=[ListeningEntry("s1"), ListeningEntry("s2")])
    b = MusicProfile(user_id="b", history=[ListeningEntry("s2"), ListeningEntry("s3")])

    breakdown = compute_breakdown(a, b)
    songs = breakdown.component(similarity.SHARED_SONGS)

    assert songs.similarity == pytest.approx(1 / 3)
    assert round(songs.points, 1) == 11.7
    # Only shared songs is evaluable without metadata, genres or timestamps
    assert breakdown.evaluated_weight == 35.0
    assert breakdown.score == 33.3


def test_empty_history_scores_zero():
    a = MusicProfile(user_id="a")
    b = MusicProfile(user_id="b", history=[ListeningEntry("s1")])

    breakdown = compute_breakdown(a, b)

    assert breakdown.score == 0.0
    assert all(not c.evaluated for c in breakdown.components)


def test_unevaluated_components_leave_the_denominator():
    a = MusicProfile(user_id="a", history=[ListeningEntry("s1")], genres={"rock": 1.0})
    b = MusicProfile(user_id="b", history=[ListeningEntry("s1")])

    breakdown = compute_breakdown(a, b)

    assert breakdown.component(similarity.GENRE_AFFINITY).evaluated is False
    assert breakdown.score == 100.0


def test_artist_overlap_splits_credits_and_caps_at_one():
    assert similarity.artist_overlap({"X": 2, "Y": 2}, {"X": 2, "Y": 2}, 2, 2) == 1.0
    assert similarity.artist_overlap({"X": 1}, {"Y": 1}, 1, 1) == 0.0
    assert similarity.artist_overlap({"X": 2}, {"X": 1}, 4, 2) == pytest.approx(0.25)


def test_cosine_zero_vector_is_zero():
    assert similarity.cosine({}, {"rock": 1.0}) == 0.0
    assert similarity.cosine({"rock": 2.0}, {"rock": 5.0}) == pytest.approx(1.0)


def test_decade_buckets_ignore_unparseable_years():
    profile = MusicProfile(
        user_id="a",
        history=[ListeningEntry("s1", play_count=2), ListeningEntry("s2")],
        songs={
            "s1": SongMetadata(song_id="s1", release_year="1994"),
            "s2": SongMetadata(song_id="s2", release_year="n/a"),
        },
    )
    assert profile.decade_vector() == {1990: 1.0}


def test_hour_vector_buckets_last_played_hours():
    profile = MusicProfile(
        user_id="a",
        history=[
            ListeningEntry("s1", play_count=5, last_played=_at(21)),
            ListeningEntry("s2", last_played=_at(21)),
            ListeningEntry("s3", last_played=_at(8)),
            ListeningEntry("s4"),
        ],
    )

    hours = profile.hour_vector()

    assert len(hours) == 24
    assert hours[21] == pytest.approx(2 / 3)
    assert hours[8] == pytest.approx(1 / 3)
    assert hours[0] == 0.0
    assert sum(hours.values()) == pytest.approx(1.0)


def test_hour_vector_without_timestamps_is_empty():
    profile = MusicProfile(user_id="a", history=[ListeningEntry("s1")])

    assert profile.hour_vector() == {}
    assert compute_breakdown(profile, profile).component(similarity.LISTENING_TIME).evaluated is False


def test_listening_time_component_uses_hour_cosine():
    a = MusicProfile(
        user_id="a",
        history=[
            ListeningEntry("s1", last_played=_at(21)),
            ListeningEntry("s2", last_played=_at(22)),
            ListeningEntry("s3", last_played=_at(8)),
        ],
    )
    b = MusicProfile(
        user_id="b",
        history=[
            ListeningEntry("s1", last_played=_at(21)),
            ListeningEntry("s3", last_played=_at(9)),
            ListeningEntry("s4", last_played=_at(9)),
        ],
    )

    hours = compute_breakdown(a, b).component(similarity.LISTENING_TIME)

    assert hours.evaluated is True
    assert hours.similarity == pytest.approx(1 / 15 ** 0.5)


def test_genre_affinity_is_cosine_of_positive_weights():
    a = MusicProfile(user_id="a", history=[ListeningEntry("s1")], genres={"pop": 3.0, "classical": 1.0, "jazz": 0.0})
    b = MusicProfile(user_id="b", history=[ListeningEntry("s2")], genres={"classical": 2.0, "pop": 0.5})

    genres = compute_breakdown(a, b).component(similarity.GENRE_AFFINITY)

    assert a.genre_vector() == {"pop": 3.0, "classical": 1.0}
    assert genres.evaluated is True
    assert genres.similarity == pytest.approx(3.5 / (10 ** 0.5 * 4.25 ** 0.5))
    assert genres.points == pytest.approx(20.0 * genres.similarity)


@pytest.mark.asyncio
async def test_score_is_symmetric_and_bounded(memory_store):
    _seed_rich_pair(memory_store)
    scorer = SimilarityScorer(store=memory_store, ledger=InMemoryMatchLedger())

    forward = await scorer.score("alice", "bob")
    backward = await scorer.score("bob", "alice")

    assert forward == backward
    assert 0.0 < forward < 100.0


@pytest.mark.asyncio
async def test_score_upserts_one_canonical_ledger_row(memory_store):
    _seed_rich_pair(memory_store)
    ledger = InMemoryMatchLedger()
    scorer = SimilarityScorer(store=memory_store, ledger=ledger)

    await scorer.score("bob", "alice")
    await scorer.score("alice", "bob")

    assert list(ledger.rows) == [("alice", "bob")]
    row = ledger.rows[("alice", "bob")]
    assert row.user_id_1 == "alice"
    assert row.status.value == "pending"


@pytest.mark.asyncio
async def test_self_pair_is_rejected(memory_store):
    scorer = SimilarityScorer(store=memory_store, ledger=InMemoryMatchLedger())
    with pytest.raises(SelfMatch):
        await scorer.score("alice", "alice")
