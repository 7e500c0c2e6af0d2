"""Tests for collection sync."""

from unittest.mock import Mock

import pytest
import requests

from slaplist.config import RecommendationSettings
from slaplist.models import Collection, CollectionSource, CollectionType, OrchestratorStats
from slaplist.quota import QuotaManager
from slaplist.resolver import TrackResolver
from slaplist.sources.base import ProviderError
from slaplist.sources.youtube import YouTubeClient
from slaplist.sync import CollectionSync


@pytest.fixture
def make_sync(catalog, provider, clock):
    def _make(limit=10_000):
        settings = RecommendationSettings(quota_limits={CollectionSource.YOUTUBE: limit})
        quota = QuotaManager(catalog.quota, settings.quota_limits, clock)
        resolver = TrackResolver(catalog.tracks, clock=clock)
        return CollectionSync(catalog, provider, quota, resolver, settings, clock)

    return _make


@pytest.fixture
def collection(catalog, clock):
    return catalog.collections.add(
        Collection(
            source=CollectionSource.YOUTUBE,
            type=CollectionType.PLAYLIST,
            external_id="PL1",
            title="Old title",
            created_at=clock(),
            updated_at=clock(),
        )
    )


def titles(catalog, collection):
    return [track.title for _, track in catalog.collections.get_tracks(collection.id)]


def test_sync_stores_tracks_in_order(make_sync, collection, catalog, provider, clock):
    provider.add_playlist(
        "PL1",
        "French House",
        [("vid00000001", "Daft Punk - One More Time"), ("vid00000002", "Stardust - Music Sounds Better")],
    )
    stats = OrchestratorStats()

    assert make_sync().ensure_synced(collection, stats) is True

    assert titles(catalog, collection) == ["One More Time", "Music Sounds Better"]
    assert [m.position for m, _ in catalog.collections.get_tracks(collection.id)] == [0, 1]
    stored = catalog.collections.get_by_id(collection.id)
    assert stored.title == "French House"
    assert stored.owner_name == "curator"
    assert stored.sync_complete is True
    assert stored.last_synced_at == clock.now
    assert stored.reported_track_count == 2
    assert stats.api_fetch_calls == 2
    assert stats.quota_used == 2


def test_unavailable_videos_skipped(make_sync, collection, catalog, provider):
    provider.add_playlist(
        "PL1",
        "French House",
        [
            ("vid00000001", "Deleted video"),
            ("vid00000002", "Private video"),
            ("vid00000003", "Daft Punk - One More Time"),
        ],
    )
    make_sync().ensure_synced(collection, OrchestratorStats())

    assert titles(catalog, collection) == ["One More Time"]
    assert catalog.tracks.count() == 1


def test_duplicate_items_stored_once(make_sync, collection, catalog, provider):
    provider.add_playlist(
        "PL1",
        "French House",
        [
            ("vid00000001", "Daft Punk - One More Time"),
            ("vid00000001", "Daft Punk - One More Time"),
            ("vid00000002", "Daft Punk - One More Time (Official Video)"),
        ],
    )
    make_sync().ensure_synced(collection, OrchestratorStats())

    assert titles(catalog, collection) == ["One More Time"]


def test_fresh_collection_is_cache_hit(make_sync, collection, provider, clock):
    provider.add_playlist("PL1", "French House", [("vid00000001", "Daft Punk - One More Time")])
    sync = make_sync()
    sync.ensure_synced(collection, OrchestratorStats())

    clock.advance(days=6)
    stats = OrchestratorStats()
    assert sync.ensure_synced(collection, stats) is False
    assert stats.cache_hits == 1
    assert provider.fetch_calls == ["PL1"]


def test_stale_collection_resynced(make_sync, collection, catalog, provider, clock):
    provider.add_playlist("PL1", "French House", [("vid00000001", "Daft Punk - One More Time")])
    sync = make_sync()
    sync.ensure_synced(collection, OrchestratorStats())

    provider.add_playlist("PL1", "French House", [("vid00000002", "Justice - Genesis")])
    clock.advance(days=8)
    assert sync.ensure_synced(collection, OrchestratorStats()) is True

    assert titles(catalog, collection) == ["Genesis"]


def test_quota_blocked(make_sync, collection, catalog, provider):
    provider.add_playlist("PL1", "French House", [("vid00000001", "Daft Punk - One More Time")])
    stats = OrchestratorStats()

    assert make_sync(limit=4).ensure_synced(collection, stats) is False
    assert stats.quota_blocked == 1
    assert provider.fetch_calls == []
    assert catalog.collections.get_by_id(collection.id).sync_complete is False


def test_quota_recorded(make_sync, collection, catalog, provider, clock):
    provider.add_playlist("PL1", "French House", [("vid00000001", "Daft Punk - One More Time")])
    make_sync().ensure_synced(collection, OrchestratorStats())

    tracker = QuotaManager(catalog.quota, clock=clock).get_or_create_today(CollectionSource.YOUTUBE)
    assert tracker.units_used == 2
    assert tracker.fetch_calls == 2


def test_failed_fetch_still_books_quota(catalog, collection, clock):
    session = Mock()
    page = Mock(status_code=200)
    page.json.return_value = {
        "items": [
            {"snippet": {"title": "Daft Punk - One More Time", "resourceId": {"videoId": "vid00000001"}}}
        ],
        "nextPageToken": "page2",
    }
    meta = Mock(status_code=200)
    meta.json.return_value = {"items": [{"snippet": {"title": "French House"}}]}
    broken = Mock(status_code=500)
    broken.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
    session.get.side_effect = [meta, page, broken]

    client = YouTubeClient("test-key", session=session, rate_limit=lambda show_progress: None)
    settings = RecommendationSettings()
    quota = QuotaManager(catalog.quota, settings.quota_limits, clock)
    sync = CollectionSync(
        catalog, client, quota, TrackResolver(catalog.tracks, clock=clock), settings, clock
    )
    stats = OrchestratorStats()

    with pytest.raises(ProviderError):
        sync.ensure_synced(collection, stats)

    tracker = quota.get_or_create_today(CollectionSource.YOUTUBE)
    assert tracker.units_used == 3
    assert tracker.fetch_calls == 3
    assert stats.quota_used == 3
    assert stats.api_fetch_calls == 3
    assert catalog.collections.get_by_id(collection.id).sync_complete is False
