"""Tests for the recommendation orchestrator."""

import threading

import pytest

from slaplist.config import RecommendationSettings
from slaplist.models import CollectionSource, Track, TrackScore
from slaplist.orchestrator import (
    RecommendationCancelled,
    RecommendationOrchestrator,
    rank_scores,
)
from slaplist.quota import QuotaManager
from slaplist.sources.base import PlaylistTrackEntry

SEED = "daft punk one more time"


@pytest.fixture
def make_orchestrator(catalog, provider, clock):
    def _make(limit=10_000):
        settings = RecommendationSettings(quota_limits={CollectionSource.YOUTUBE: limit})
        return RecommendationOrchestrator(catalog, provider, settings, clock)

    return _make


@pytest.fixture
def two_playlists(provider):
    provider.searches[SEED] = [
        provider.add_playlist(
            "PL1",
            "French House",
            [
                ("vidSEED0001", "Daft Punk - One More Time"),
                ("vidX0000001", "Stardust - Music Sounds Better With You"),
            ],
        ),
        provider.add_playlist(
            "PL2",
            "Filter Disco",
            [
                ("vidX0000002", "Stardust - Music Sounds Better With You (Official Video)"),
                ("vidY0000001", "Justice - Genesis"),
            ],
        ),
    ]


def by_title(result):
    return {score.track.title: score for score in result.recommendations}


def test_end_to_end(make_orchestrator, two_playlists):
    result = make_orchestrator().recommend([SEED], collections_per_track=2, results_to_return=10)

    scores = by_title(result)
    assert set(scores) == {"Music Sounds Better With You", "Genesis"}
    assert scores["Music Sounds Better With You"].frequency == 2
    assert scores["Music Sounds Better With You"].found_in_collections == {"French House", "Filter Disco"}
    assert scores["Genesis"].frequency == 1
    assert [s.track.title for s in result.recommendations] == ["Music Sounds Better With You", "Genesis"]
    assert result.total_unique_tracks_found == 2
    assert result.collections_processed == 2
    assert result.stats.api_search_calls == 1
    assert result.stats.api_fetch_calls == 4
    assert result.stats.quota_used == 104


def test_second_run_served_from_cache(make_orchestrator, two_playlists, provider):
    orchestrator = make_orchestrator()
    orchestrator.recommend([SEED], collections_per_track=2)
    result = orchestrator.recommend([SEED], collections_per_track=2)

    assert result.stats.total_api_calls == 0
    assert result.stats.cache_hits == 3
    assert len(provider.search_calls) == 1
    assert by_title(result)["Music Sounds Better With You"].frequency == 2


def test_collections_per_track_caps_processing(make_orchestrator, two_playlists, provider):
    result = make_orchestrator().recommend([SEED], collections_per_track=1)

    assert result.collections_processed == 1
    assert provider.fetch_calls == ["PL1"]


def test_results_to_return(make_orchestrator, two_playlists):
    result = make_orchestrator().recommend([SEED], collections_per_track=2, results_to_return=1)

    assert [s.track.title for s in result.recommendations] == ["Music Sounds Better With You"]
    assert result.total_unique_tracks_found == 2


def test_shared_collection_processed_once(make_orchestrator, two_playlists, provider):
    provider.searches["french touch classics"] = [provider.searches[SEED][0]]

    result = make_orchestrator().recommend(
        [SEED, "french touch classics"], collections_per_track=2
    )

    assert provider.fetch_calls.count("PL1") == 1
    assert result.collections_processed == 2
    scores = by_title(result)
    assert scores["Music Sounds Better With You"].frequency == 2
    assert scores["Music Sounds Better With You"].found_in_collections == {"French House", "Filter Disco"}
    assert scores["Genesis"].found_in_collections == {"Filter Disco"}
    assert sum(s.frequency for s in result.recommendations) == 3


def test_quota_blocked_spends_nothing(make_orchestrator, two_playlists, catalog, provider, clock):
    result = make_orchestrator(limit=50).recommend([SEED])

    assert result.recommendations == []
    assert result.stats.quota_blocked == 1
    assert provider.search_calls == []
    tracker = QuotaManager(catalog.quota, clock=clock).get_or_create_today(CollectionSource.YOUTUBE)
    assert tracker.units_used == 0


def test_cancel_before_start(make_orchestrator, two_playlists, provider):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RecommendationCancelled):
        make_orchestrator().recommend([SEED], cancel_event=cancel)
    assert provider.search_calls == []


def test_cancel_keeps_synced_collections(make_orchestrator, two_playlists, catalog, provider):
    cancel = threading.Event()
    fetch = provider.get_collection_tracks

    def fetch_then_cancel(collection_id):
        cancel.set()
        return fetch(collection_id)

    provider.get_collection_tracks = fetch_then_cancel

    with pytest.raises(RecommendationCancelled):
        make_orchestrator().recommend([SEED], collections_per_track=2, cancel_event=cancel)

    assert provider.fetch_calls == ["PL1"]
    pl1 = catalog.collections.get_by_external_id(CollectionSource.YOUTUBE, "PL1")
    assert pl1.sync_complete is True
    assert catalog.statistics.recent() == []


def test_statistic_recorded(make_orchestrator, two_playlists, catalog):
    make_orchestrator().recommend(["  ", SEED], collections_per_track=2)

    [statistic] = catalog.statistics.recent()
    assert statistic.input_queries == [SEED]
    assert statistic.api_search_calls == 1
    assert statistic.quota_used == 104


def test_diversify_excludes_processed_titles(make_orchestrator, two_playlists, provider):
    provider.searches["justice genesis"] = []

    make_orchestrator().recommend([SEED, "justice genesis"], collections_per_track=2, diversify=True)

    assert provider.search_calls[0][2] == []
    assert provider.search_calls[1][2] == ["French House", "Filter Disco"]


def test_track_id_mode(make_orchestrator, two_playlists, provider):
    provider.videos["vidSEED0001"] = SEED

    result = make_orchestrator().recommend(
        ["vidSEED0001"], collections_per_track=2, seed_mode="track_id"
    )

    scores = by_title(result)
    assert "One More Time" not in scores
    assert scores["Music Sounds Better With You"].frequency == 2


def test_track_id_mode_does_not_match_titles_against_ids(make_orchestrator, two_playlists, provider):
    provider.videos["vidSEED0001"] = SEED
    provider.playlists["PL2"].append(PlaylistTrackEntry(video_id="vidZ0000001", raw_title="Vid - Seed"))

    result = make_orchestrator().recommend(
        ["vidSEED0001"], collections_per_track=2, seed_mode="track_id"
    )

    assert by_title(result)["Seed"].frequency == 1


def test_invalid_seed_mode(make_orchestrator):
    with pytest.raises(ValueError):
        make_orchestrator().recommend([SEED], seed_mode="artist")


def test_rank_scores_tie_break():
    scores = [
        TrackScore(Track("x", "B", id=1), frequency=3),
        TrackScore(Track("x", "A", id=2), frequency=3),
        TrackScore(Track("x", "C", id=3), frequency=1),
    ]

    assert [s.track.title for s in rank_scores(scores, 10)] == ["A", "B", "C"]
    assert [s.track.title for s in rank_scores(scores, 2)] == ["A", "B"]
    assert rank_scores(scores, 0) == []
