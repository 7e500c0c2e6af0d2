"""Shared fixtures: in-memory catalog, fixed clock and a scripted provider."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from slaplist.config import RecommendationSettings
from slaplist.models import CollectionSource
from slaplist.sources.base import (
    DiscoveryProvider,
    PlaylistFetchResult,
    PlaylistSummary,
    PlaylistTrackEntry,
    SearchResult,
)
from slaplist.store.sqlite import SQLiteCatalog


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeProvider(DiscoveryProvider):
    """Provider answering from dictionaries and recording every call."""

    source = CollectionSource.YOUTUBE

    def __init__(self):
        self.searches: Dict[str, List[PlaylistSummary]] = {}
        self.videos: Dict[str, str] = {}
        self.playlists: Dict[str, List[PlaylistTrackEntry]] = {}
        self.playlist_titles: Dict[str, str] = {}
        self.search_calls: List[tuple] = []
        self.fetch_calls: List[str] = []

    def add_playlist(self, playlist_id: str, title: str, raw_titles: Sequence[tuple]):
        """Register a playlist; raw_titles are (video_id, raw_title) pairs."""
        self.playlist_titles[playlist_id] = title
        self.playlists[playlist_id] = [
            PlaylistTrackEntry(video_id=video_id, raw_title=raw_title)
            for video_id, raw_title in raw_titles
        ]
        return PlaylistSummary(playlist_id=playlist_id, title=title, channel_title="curator")

    def search_playlists(
        self,
        query: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        self.search_calls.append((query, max_results, list(excluded_titles or [])))
        playlists = [
            p for p in self.searches.get(query, []) if p.title not in (excluded_titles or [])
        ]
        return SearchResult(playlists=playlists[:max_results], quota_used=100)

    def search_playlists_by_track_id(
        self,
        track_id: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        result = self.search_playlists(self.videos.get(track_id, track_id), max_results, excluded_titles)
        result.quota_used += 1
        return result

    def get_collection_tracks(self, collection_id: str) -> PlaylistFetchResult:
        self.fetch_calls.append(collection_id)
        tracks = list(self.playlists.get(collection_id, []))
        return PlaylistFetchResult(
            playlist_id=collection_id,
            tracks=tracks,
            quota_used=2,
            fetch_calls=2,
            title=self.playlist_titles.get(collection_id),
            channel_title="curator",
        )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def catalog():
    catalog = SQLiteCatalog()
    yield catalog
    catalog.close()


@pytest.fixture
def settings():
    return RecommendationSettings()


@pytest.fixture
def provider():
    return FakeProvider()
