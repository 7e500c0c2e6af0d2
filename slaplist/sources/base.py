"""Base class for collection discovery providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import CollectionSource

UNAVAILABLE_TITLES = ("Deleted video", "Private video")


class ProviderError(Exception):
    """A provider call failed for a reason other than missing data.

    quota_used and the call counts cover every request sent before (and
    including) the failed one, so callers can still book them.
    """

    def __init__(
        self,
        message: str,
        quota_used: int = 0,
        search_calls: int = 0,
        fetch_calls: int = 0,
    ):
        super().__init__(message)
        self.quota_used = quota_used
        self.search_calls = search_calls
        self.fetch_calls = fetch_calls


@dataclass
class PlaylistSummary:
    """A playlist as returned by a search."""

    playlist_id: str
    title: str
    channel_title: Optional[str] = None
    thumbnail_url: Optional[str] = None

    item_count: Optional[int] = None
    """Not available from search results"""


@dataclass
class PlaylistTrackEntry:
    """One item of a playlist listing."""

    video_id: str
    raw_title: str

    channel_title: str = "Unknown"
    """Uploader of the video, usually the artist for music"""

    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[int] = None

    @property
    def unavailable(self) -> bool:
        """True for placeholders of deleted or private videos."""
        return self.raw_title in UNAVAILABLE_TITLES


@dataclass
class SearchResult:
    """Playlists found by a search plus what the search cost."""

    playlists: List[PlaylistSummary] = field(default_factory=list)
    quota_used: int = 0
    search_calls: int = 1


@dataclass
class PlaylistFetchResult:
    """Full listing of a playlist plus what fetching it cost."""

    playlist_id: str
    tracks: List[PlaylistTrackEntry] = field(default_factory=list)
    quota_used: int = 0
    fetch_calls: int = 0

    title: Optional[str] = None
    channel_title: Optional[str] = None
    """Current playlist metadata, None when the provider did not return it"""


class DiscoveryProvider(ABC):
    """Source of collections and their contents."""

    source: CollectionSource

    @abstractmethod
    def search_playlists(
        self,
        query: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        """Search for playlists related to a free-text query."""

    @abstractmethod
    def search_playlists_by_track_id(
        self,
        track_id: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        """Search for playlists likely to contain a known track."""

    @abstractmethod
    def get_collection_tracks(self, collection_id: str) -> PlaylistFetchResult:
        """Fetch every item of a playlist.

        A playlist that no longer exists ends the listing early; whatever was
        collected until then is returned.
        """
