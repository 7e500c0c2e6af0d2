"""Repository contracts the recommendation pipeline depends on."""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from ..models import (
    Collection,
    CollectionSource,
    CollectionTrack,
    QueryStatistic,
    QuotaTracker,
    SearchCache,
    SearchType,
    Track,
)


class TrackRepository(ABC):
    """Catalog of tracks."""

    @abstractmethod
    def get_by_id(self, track_id: int) -> Optional[Track]:
        pass

    @abstractmethod
    def get_by_external_id(self, source: CollectionSource, external_id: str) -> Optional[Track]:
        """Find a track by its identifier on a source (e.g. YouTube video id)."""

    @abstractmethod
    def find_by_artist_title(self, normalized_artist: str, normalized_title: str) -> Optional[Track]:
        """Find a track by exact normalized artist + title."""

    @abstractmethod
    def search(self, query: str, limit: int = 50) -> List[Track]:
        """Search tracks whose artist or title contains the query."""

    @abstractmethod
    def get_most_connected(self, limit: int = 50) -> List[Tuple[Track, int]]:
        """Get tracks appearing in the most collections, with their counts."""

    @abstractmethod
    def get_needing_enrichment(self, limit: int = 100) -> List[Track]:
        """Get tracks that have an artist but were never enriched."""

    @abstractmethod
    def add(self, track: Track) -> Track:
        """Insert a track and assign its id."""

    @abstractmethod
    def update(self, track: Track):
        pass

    @abstractmethod
    def count(self) -> int:
        pass


class CollectionRepository(ABC):
    """Catalog of collections and their track membership."""

    @abstractmethod
    def get_by_id(self, collection_id: int) -> Optional[Collection]:
        pass

    @abstractmethod
    def get_by_ids(self, collection_ids: Sequence[int]) -> List[Collection]:
        """Load several collections. Order of the result is unspecified."""

    @abstractmethod
    def get_by_external_id(self, source: CollectionSource, external_id: str) -> Optional[Collection]:
        pass

    @abstractmethod
    def get_needing_sync(
        self,
        source: CollectionSource,
        max_age: timedelta,
        now: datetime,
        limit: int = 20,
    ) -> List[Collection]:
        """Get collections never synced or synced longer than max_age ago."""

    @abstractmethod
    def get_containing_track(self, track_id: int) -> List[Collection]:
        pass

    @abstractmethod
    def get_tracks(self, collection_id: int) -> List[Tuple[CollectionTrack, Track]]:
        """Get a collection's memberships ordered by position."""

    @abstractmethod
    def add(self, collection: Collection) -> Collection:
        """Insert a collection and assign its id."""

    @abstractmethod
    def update(self, collection: Collection):
        pass

    @abstractmethod
    def replace_tracks(self, collection: Collection, entries: Sequence[CollectionTrack]):
        """Clear a collection's memberships and store entries instead.

        The collection row itself is updated in the same transaction.
        """

    @abstractmethod
    def count(self, source: Optional[CollectionSource] = None) -> int:
        pass


class SearchCacheRepository(ABC):
    """Memo of discovery searches."""

    @abstractmethod
    def find_valid(
        self,
        normalized_query: str,
        source: CollectionSource,
        search_type: SearchType,
        max_age: timedelta,
        now: datetime,
    ) -> Optional[SearchCache]:
        """Get the newest entry for the key if it is no older than max_age."""

    @abstractmethod
    def add(self, entry: SearchCache) -> SearchCache:
        pass


class QuotaRepository(ABC):
    """Per-day, per-source quota rows."""

    @abstractmethod
    def get_or_create(self, day: date, source: CollectionSource, daily_limit: int) -> QuotaTracker:
        """Get the row for (day, source), creating it with daily_limit."""

    @abstractmethod
    def increment(
        self,
        day: date,
        source: CollectionSource,
        daily_limit: int,
        units: int,
        search_calls: int = 0,
        fetch_calls: int = 0,
    ) -> QuotaTracker:
        """Add usage to the (day, source) row, creating it if needed."""


class QueryStatisticRepository(ABC):
    """History of recommendation runs."""

    @abstractmethod
    def add(self, statistic: QueryStatistic) -> QueryStatistic:
        pass

    @abstractmethod
    def recent(self, limit: int = 20) -> List[QueryStatistic]:
        pass


class Catalog(ABC):
    """All repositories backed by one storage engine."""

    tracks: TrackRepository
    collections: CollectionRepository
    search_cache: SearchCacheRepository
    quota: QuotaRepository
    statistics: QueryStatisticRepository

    @abstractmethod
    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
