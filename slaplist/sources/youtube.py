"""YouTube playlist discovery via the YouTube Data API v3."""

import re
import sys
from typing import Callable, Dict, List, Optional, Sequence
from urllib.parse import parse_qs, urlparse

import requests

from .. import __version__
from ..models import CollectionSource
from ..normalize import UNKNOWN_ARTIST, parse_artist_title
from ..rate_limiter import youtube_rate_limit
from .base import (
    DiscoveryProvider,
    PlaylistFetchResult,
    PlaylistSummary,
    PlaylistTrackEntry,
    ProviderError,
    SearchResult,
)

# Quota unit costs, see https://developers.google.com/youtube/v3/determine_quota_cost
SEARCH_LIST_UNIT_COST = 100
VIDEOS_LIST_UNIT_COST = 1
PLAYLISTS_LIST_UNIT_COST = 1
PLAYLIST_ITEMS_LIST_UNIT_COST = 1

MAX_SEARCH_RESULTS = 50
PAGE_SIZE = 50
MAX_PAGES = 100  # YouTube caps playlists at 5000 items
MAX_EXCLUDED_TITLES = 5

_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_DURATION = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")
_TOPIC_SUFFIX = re.compile(r"\s*-\s*topic\s*$", re.IGNORECASE)


def extract_video_id(url: str) -> Optional[str]:
    """Extract a YouTube video ID from a URL or bare ID.

    Supports watch?v=, youtu.be/, /embed/, /v/ and /shorts/ URLs.

    Args:
        url: URL or 11-character video ID

    Returns:
        Video ID, or None if none could be found
    """
    if not url or not url.strip():
        return None
    url = url.strip()

    if _VIDEO_ID.match(url):
        return url

    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()

    if host.endswith("youtube.com"):
        video_id = parse_qs(parsed.query).get("v", [None])[0]
        if video_id and _VIDEO_ID.match(video_id):
            return video_id

        segments = [s for s in parsed.path.split("/") if s]
        if len(segments) >= 2 and segments[0] in ("embed", "v", "shorts"):
            if _VIDEO_ID.match(segments[1]):
                return segments[1]

    if host == "youtu.be":
        candidate = parsed.path.lstrip("/").split("/")[0]
        if _VIDEO_ID.match(candidate):
            return candidate

    return None


def parse_duration(value: Optional[str]) -> Optional[int]:
    """Convert an ISO 8601 duration like PT4M13S to seconds."""
    if not value:
        return None
    match = _DURATION.match(value)
    if not match:
        return None
    days, hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


def build_search_query(query: str, excluded_titles: Optional[Sequence[str]] = None) -> str:
    """Build a playlist search string, excluding already seen playlist titles."""
    parts = [f"{query.strip()} playlist"]
    for title in list(excluded_titles or [])[:MAX_EXCLUDED_TITLES]:
        cleaned = title.replace('"', "").strip()
        if cleaned:
            parts.append(f'-"{cleaned}"')
    return " ".join(parts)


def _thumbnail(snippet: dict) -> Optional[str]:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


class _NotFound(Exception):
    pass


class YouTubeClient(DiscoveryProvider):
    """Client for the YouTube Data API."""

    API_BASE = "https://www.googleapis.com/youtube/v3"

    source = CollectionSource.YOUTUBE

    def __init__(
        self,
        api_key: str,
        application_name: str = "slaplist",
        session: Optional[requests.Session] = None,
        rate_limit: Callable[[bool], None] = youtube_rate_limit,
        verbose: bool = False,
    ):
        """Initialize YouTube client.

        Args:
            api_key: YouTube Data API key
            application_name: Sent in the User-Agent header
            session: Pre-built requests session
            rate_limit: Called with show_progress before every request
            verbose: Print progress to stderr
        """
        if not api_key:
            raise ValueError("A YouTube Data API key is required")
        self.api_key = api_key
        self.rate_limit = rate_limit
        self.verbose = verbose
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": f"{application_name}/{__version__}",
            }
        )

    def _get(self, endpoint: str, params: Dict[str, object]) -> dict:
        """GET an API endpoint.

        Raises:
            _NotFound: If the API answered 404
            ProviderError: On any other request failure
        """
        self.rate_limit(self.verbose)
        try:
            response = self.session.get(
                f"{self.API_BASE}/{endpoint}",
                params={**params, "key": self.api_key},
                timeout=10,
            )
            if response.status_code == 404:
                raise _NotFound(endpoint)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise ProviderError(f"YouTube API error on {endpoint}: {e}") from e

    def search_playlists(
        self,
        query: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        """Search for playlists related to a query.

        Args:
            query: Free-text query, " playlist" is appended
            max_results: Number of playlists wanted (capped at 50)
            excluded_titles: Playlist titles to keep out of the results

        Returns:
            Playlist summaries in relevance order, costing 100 units
        """
        q = build_search_query(query, excluded_titles)
        if self.verbose:
            print(f"🔍 Searching YouTube: {q}", file=sys.stderr)

        try:
            data = self._get(
                "search",
                {
                    "part": "snippet",
                    "type": "playlist",
                    "q": q,
                    "maxResults": max(1, min(max_results, MAX_SEARCH_RESULTS)),
                },
            )
        except _NotFound:
            data = {}
        except ProviderError as e:
            e.quota_used += SEARCH_LIST_UNIT_COST
            e.search_calls += 1
            raise

        playlists = []
        for item in data.get("items", []):
            playlist_id = (item.get("id") or {}).get("playlistId")
            if not playlist_id:
                continue
            snippet = item.get("snippet") or {}
            playlists.append(
                PlaylistSummary(
                    playlist_id=playlist_id,
                    title=snippet.get("title", ""),
                    channel_title=snippet.get("channelTitle"),
                    thumbnail_url=_thumbnail(snippet),
                )
            )

        return SearchResult(playlists=playlists, quota_used=SEARCH_LIST_UNIT_COST)

    def get_video(self, video_id: str) -> Optional[dict]:
        """Get title, channel and duration of a video.

        Returns:
            Dictionary with title, channel_title, duration_seconds, or None
        """
        try:
            data = self._get("videos", {"part": "snippet,contentDetails", "id": video_id})
        except _NotFound:
            return None
        except ProviderError as e:
            e.quota_used += VIDEOS_LIST_UNIT_COST
            raise

        items = data.get("items") or []
        if not items:
            return None
        snippet = items[0].get("snippet") or {}
        details = items[0].get("contentDetails") or {}
        return {
            "title": snippet.get("title", ""),
            "channel_title": snippet.get("channelTitle", ""),
            "duration_seconds": parse_duration(details.get("duration")),
        }

    def search_playlists_by_track_id(
        self,
        track_id: str,
        max_results: int = 10,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> SearchResult:
        """Search for playlists likely to contain a specific video.

        The video's own title is parsed into artist and title; when no artist
        can be parsed the uploading channel stands in for it.
        """
        video = self.get_video(track_id)
        if video is None:
            if self.verbose:
                print(f"⚠️  Video not found: {track_id}", file=sys.stderr)
            return SearchResult(quota_used=VIDEOS_LIST_UNIT_COST, search_calls=0)

        artist, title = parse_artist_title(video["title"])
        if artist == UNKNOWN_ARTIST and video["channel_title"]:
            artist = _TOPIC_SUFFIX.sub("", video["channel_title"]).strip()

        query = f"{artist} {title}" if artist != UNKNOWN_ARTIST else title
        try:
            result = self.search_playlists(query, max_results, excluded_titles)
        except ProviderError as e:
            e.quota_used += VIDEOS_LIST_UNIT_COST
            raise
        result.quota_used += VIDEOS_LIST_UNIT_COST
        return result

    def get_collection_tracks(self, collection_id: str) -> PlaylistFetchResult:
        """Fetch all items of a playlist, 50 per page.

        Args:
            collection_id: YouTube playlist ID

        Returns:
            Items in playlist order (deleted/private placeholders included)
        """
        result = PlaylistFetchResult(playlist_id=collection_id)
        try:
            self._fetch_into(result)
        except ProviderError as e:
            # Pages fetched before the failure were billed all the same
            e.quota_used += result.quota_used
            e.fetch_calls += result.fetch_calls
            raise
        return result

    def _fetch_into(self, result: PlaylistFetchResult):
        collection_id = result.playlist_id
        try:
            meta = self._get("playlists", {"part": "snippet", "id": collection_id})
        except _NotFound:
            meta = {}
        finally:
            result.quota_used += PLAYLISTS_LIST_UNIT_COST
            result.fetch_calls += 1

        items = meta.get("items") or []
        if not items:
            if self.verbose:
                print(f"⚠️  Playlist no longer exists: {collection_id}", file=sys.stderr)
            return
        snippet = items[0].get("snippet") or {}
        result.title = snippet.get("title")
        result.channel_title = snippet.get("channelTitle")

        page_token = None
        for _ in range(MAX_PAGES):
            params = {
                "part": "snippet,contentDetails",
                "playlistId": collection_id,
                "maxResults": PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token

            try:
                page = self._get("playlistItems", params)
            except _NotFound:
                if self.verbose:
                    print(
                        f"⚠️  Playlist disappeared while paging: {collection_id}",
                        file=sys.stderr,
                    )
                break
            finally:
                result.quota_used += PLAYLIST_ITEMS_LIST_UNIT_COST
                result.fetch_calls += 1

            result.tracks.extend(self._parse_items(page.get("items", [])))

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        if self.verbose:
            print(
                f"📝 {result.title or collection_id}: {len(result.tracks)} items",
                file=sys.stderr,
            )

    @staticmethod
    def _parse_items(items: List[dict]) -> List[PlaylistTrackEntry]:
        entries = []
        for item in items:
            snippet = item.get("snippet") or {}
            video_id = (snippet.get("resourceId") or {}).get("videoId") or (
                item.get("contentDetails") or {}
            ).get("videoId")
            if not video_id:
                continue
            entries.append(
                PlaylistTrackEntry(
                    video_id=video_id,
                    raw_title=snippet.get("title", ""),
                    channel_title=snippet.get("videoOwnerChannelTitle") or "Unknown",
                    thumbnail_url=_thumbnail(snippet),
                )
            )
        return entries
