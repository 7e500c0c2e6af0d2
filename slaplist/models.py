"""Domain model for the recommendation catalog."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Set

from .normalize import normalize_query


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class CollectionSource(str, Enum):
    """Platform a collection (and its quota budget) belongs to."""

    YOUTUBE = "youtube"
    DISCOGS = "discogs"
    BANDCAMP = "bandcamp"


class CollectionType(str, Enum):
    """Kind of collection within a source."""

    # YouTube
    PLAYLIST = "playlist"

    # Discogs
    COLLECTION = "collection"
    WANTLIST = "wantlist"
    FOR_SALE = "for_sale"

    # Bandcamp
    PURCHASES = "purchases"
    WISHLIST = "wishlist"


class SearchType(str, Enum):
    """What a cached search was looking for."""

    PLAYLIST_SEARCH = "playlist_search"
    TRACK_SEARCH = "track_search"
    USER_SEARCH = "user_search"
    SELLER_SEARCH = "seller_search"


DEFAULT_DAILY_LIMITS = {
    CollectionSource.YOUTUBE: 10_000,  # searches cost 100 units each
    CollectionSource.DISCOGS: 1_000,
    CollectionSource.BANDCAMP: 10_000,
}
FALLBACK_DAILY_LIMIT = 1_000


@dataclass
class Track:
    """A source-agnostic musical work.

    A track is the same track whether it was found on YouTube, Discogs or
    Bandcamp; the per-source identifiers are optional attributes.
    """

    artist: str
    """Display artist"""

    title: str
    """Display title"""

    normalized_artist: str = ""
    normalized_title: str = ""

    id: Optional[int] = None

    youtube_video_id: Optional[str] = None
    discogs_release_id: Optional[str] = None
    discogs_master_id: Optional[str] = None
    bandcamp_url: Optional[str] = None

    label: Optional[str] = None
    genre: Optional[str] = None
    bpm: Optional[int] = None
    key: Optional[str] = None
    release_year: Optional[int] = None
    duration_seconds: Optional[int] = None

    raw_titles_encountered: List[str] = field(default_factory=list)
    """Every distinct raw title seen for this track, in order of first sighting"""

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    last_enriched_at: Optional[datetime] = None
    """None means only bare identity is known"""

    def external_id(self, source: CollectionSource) -> Optional[str]:
        """Get the identifier this track has on a source."""
        if source is CollectionSource.YOUTUBE:
            return self.youtube_video_id
        if source is CollectionSource.DISCOGS:
            return self.discogs_release_id
        if source is CollectionSource.BANDCAMP:
            return self.bandcamp_url
        raise ValueError(f"Unsupported source: {source}")

    def set_external_id(self, source: CollectionSource, value: str):
        """Set the identifier this track has on a source."""
        if source is CollectionSource.YOUTUBE:
            self.youtube_video_id = value
        elif source is CollectionSource.DISCOGS:
            self.discogs_release_id = value
        elif source is CollectionSource.BANDCAMP:
            self.bandcamp_url = value
        else:
            raise ValueError(f"Unsupported source: {source}")

    def add_raw_title(self, raw_title: str) -> bool:
        """Record a raw title if it has not been seen before.

        Returns:
            True if the title was appended
        """
        if raw_title in self.raw_titles_encountered:
            return False
        self.raw_titles_encountered.append(raw_title)
        return True

    @property
    def youtube_url(self) -> Optional[str]:
        if self.youtube_video_id is None:
            return None
        return f"https://www.youtube.com/watch?v={self.youtube_video_id}"

    @property
    def discogs_url(self) -> Optional[str]:
        if self.discogs_release_id is None:
            return None
        return f"https://www.discogs.com/release/{self.discogs_release_id}"

    @property
    def needs_enrichment(self) -> bool:
        return self.last_enriched_at is None and bool(self.artist)

    @property
    def display_name(self) -> str:
        return f"{self.artist} - {self.title}"


@dataclass
class Collection:
    """An externally curated, ordered group of tracks (e.g. a playlist)."""

    source: CollectionSource
    type: CollectionType

    external_id: str
    """Source-scoped id: playlist id on YouTube, username on Discogs/Bandcamp"""

    title: str = ""
    id: Optional[int] = None
    description: Optional[str] = None
    owner_name: Optional[str] = None
    owner_external_id: Optional[str] = None
    thumbnail_url: Optional[str] = None

    reported_track_count: int = 0
    """Track count as reported by the platform, may differ from stored tracks"""

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_synced_at: Optional[datetime] = None

    sync_complete: bool = False
    """False until a full sync has finished"""

    def needs_sync(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        """Check whether the stored track list is missing or older than max_age."""
        if self.last_synced_at is None:
            return True
        return (now or utcnow()) - self.last_synced_at > max_age

    @property
    def url(self) -> str:
        source, kind = self.source, self.type
        if source is CollectionSource.YOUTUBE:
            return f"https://www.youtube.com/playlist?list={self.external_id}"
        if source is CollectionSource.DISCOGS:
            if kind is CollectionType.COLLECTION:
                return f"https://www.discogs.com/user/{self.external_id}/collection"
            if kind is CollectionType.WANTLIST:
                return f"https://www.discogs.com/user/{self.external_id}/wantlist"
            if kind is CollectionType.FOR_SALE:
                return f"https://www.discogs.com/seller/{self.external_id}/profile"
            return self.external_id
        if source is CollectionSource.BANDCAMP:
            return f"https://bandcamp.com/{self.external_id}"
        raise ValueError(f"Unsupported source: {source}")


@dataclass
class CollectionTrack:
    """Membership of a track in a collection at the last sync."""

    collection_id: int
    track_id: int
    position: int
    discovered_at: datetime = field(default_factory=utcnow)
    added_to_collection_at: Optional[datetime] = None


@dataclass
class SearchCache:
    """Memo of one discovery search. Never mutated once stored."""

    query: str
    normalized_query: str
    source: CollectionSource
    search_type: SearchType
    id: Optional[int] = None
    searched_at: datetime = field(default_factory=utcnow)
    result_count: int = 0
    quota_used: int = 0

    result_collection_ids: List[int] = field(default_factory=list)
    """Collection ids in provider relevance order"""

    result_track_ids: List[int] = field(default_factory=list)

    def is_expired(self, max_age: timedelta, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) - self.searched_at > max_age

    @staticmethod
    def normalize(query: Optional[str]) -> str:
        """Lowercase and trim a query for cache matching."""
        return normalize_query(query)


@dataclass
class QuotaTracker:
    """Daily API budget usage for one source."""

    day: date
    source: CollectionSource
    daily_limit: int
    id: Optional[int] = None
    units_used: int = 0
    search_calls: int = 0
    fetch_calls: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.units_used)

    @property
    def is_exhausted(self) -> bool:
        return self.units_used >= self.daily_limit

    @property
    def usage_percent(self) -> float:
        if self.daily_limit <= 0:
            return 100.0
        return round(self.units_used / self.daily_limit * 100, 1)

    def can_use(self, units: int) -> bool:
        return self.remaining >= units

    @staticmethod
    def default_limit(source: CollectionSource) -> int:
        return DEFAULT_DAILY_LIMITS.get(source, FALLBACK_DAILY_LIMIT)


@dataclass
class OrchestratorStats:
    """Call accounting for one recommendation run."""

    api_search_calls: int = 0
    api_fetch_calls: int = 0
    cache_hits: int = 0
    quota_blocked: int = 0
    quota_used: int = 0

    @property
    def total_api_calls(self) -> int:
        return self.api_search_calls + self.api_fetch_calls


@dataclass
class QueryStatistic:
    """Persisted summary of a recommendation run."""

    input_queries: List[str]
    api_search_calls: int = 0
    api_fetch_calls: int = 0
    cache_hits: int = 0
    quota_blocked: int = 0
    quota_used: int = 0
    id: Optional[int] = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime = field(default_factory=utcnow)

    @property
    def total_api_calls(self) -> int:
        return self.api_search_calls + self.api_fetch_calls

    @classmethod
    def from_stats(
        cls,
        input_queries: List[str],
        stats: OrchestratorStats,
        started_at: datetime,
        completed_at: datetime,
    ) -> "QueryStatistic":
        return cls(
            input_queries=list(input_queries),
            api_search_calls=stats.api_search_calls,
            api_fetch_calls=stats.api_fetch_calls,
            cache_hits=stats.cache_hits,
            quota_blocked=stats.quota_blocked,
            quota_used=stats.quota_used,
            started_at=started_at,
            completed_at=completed_at,
        )


@dataclass
class TrackScore:
    """How often a candidate track showed up across processed collections."""

    track: Track
    frequency: int = 0
    found_in_collections: Set[str] = field(default_factory=set)


@dataclass
class RecommendationResult:
    """Ranked recommendations plus the accounting for the run."""

    recommendations: List[TrackScore] = field(default_factory=list)
    stats: OrchestratorStats = field(default_factory=OrchestratorStats)
    total_unique_tracks_found: int = 0
    collections_processed: int = 0
