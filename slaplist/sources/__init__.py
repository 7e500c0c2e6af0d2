"""Collection discovery providers."""

from .base import (
    DiscoveryProvider,
    PlaylistFetchResult,
    PlaylistSummary,
    PlaylistTrackEntry,
    ProviderError,
    SearchResult,
)
from .youtube import YouTubeClient, extract_video_id

__all__ = [
    "DiscoveryProvider",
    "PlaylistFetchResult",
    "PlaylistSummary",
    "PlaylistTrackEntry",
    "ProviderError",
    "SearchResult",
    "YouTubeClient",
    "extract_video_id",
]
