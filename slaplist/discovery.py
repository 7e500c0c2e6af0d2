"""Collection discovery: seed query -> candidate collections."""

import sys
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from .config import RecommendationSettings
from .models import (
    Collection,
    CollectionType,
    OrchestratorStats,
    SearchCache,
    SearchType,
    utcnow,
)
from .normalize import normalize_query
from .quota import QuotaManager
from .sources.base import DiscoveryProvider, ProviderError, SearchResult
from .store.base import Catalog

TRACK_ID_KEY_PREFIX = "video:"


class CollectionDiscovery:
    """Find collections related to a seed, cache first, provider second."""

    def __init__(
        self,
        catalog: Catalog,
        provider: DiscoveryProvider,
        quota: QuotaManager,
        settings: RecommendationSettings,
        clock: Callable[[], datetime] = utcnow,
        verbose: bool = False,
    ):
        """Initialize discovery.

        Args:
            catalog: Repositories for collections and the search cache
            provider: External playlist search
            quota: Daily budget gate for provider.source
            settings: Cache max age and search unit cost
            clock: Returns the current aware UTC datetime
            verbose: Print progress to stderr
        """
        self.catalog = catalog
        self.provider = provider
        self.quota = quota
        self.settings = settings
        self.clock = clock
        self.verbose = verbose

    @property
    def source(self):
        return self.provider.source

    def discover(
        self,
        query: str,
        max_collections: int,
        stats: OrchestratorStats,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> List[Collection]:
        """Get up to max_collections collections related to a text query."""
        return self._discover(
            query,
            normalize_query(query),
            max_collections,
            stats,
            lambda: self.provider.search_playlists(query, max_collections, excluded_titles),
        )

    def discover_by_track_id(
        self,
        track_id: str,
        max_collections: int,
        stats: OrchestratorStats,
        excluded_titles: Optional[Sequence[str]] = None,
    ) -> List[Collection]:
        """Get up to max_collections collections likely to contain a known track.

        Video ids are case-sensitive, so the cache key keeps the id as is.
        """
        track_id = track_id.strip()
        return self._discover(
            track_id,
            TRACK_ID_KEY_PREFIX + track_id,
            max_collections,
            stats,
            lambda: self.provider.search_playlists_by_track_id(
                track_id, max_collections, excluded_titles
            ),
        )

    def _discover(
        self,
        query: str,
        cache_key: str,
        max_collections: int,
        stats: OrchestratorStats,
        search: Callable[[], SearchResult],
    ) -> List[Collection]:
        cached = self.catalog.search_cache.find_valid(
            cache_key,
            self.source,
            SearchType.PLAYLIST_SEARCH,
            self.settings.search_cache_max_age,
            self.clock(),
        )
        # An empty cached result is not trusted enough to skip a real search
        if cached is not None and cached.result_collection_ids:
            stats.cache_hits += 1
            if self.verbose:
                print(f"💾 Cached search: {query}", file=sys.stderr)
            return self._load_in_order(cached.result_collection_ids[:max_collections])

        if not self.quota.can_use(self.source, self.settings.search_unit_cost):
            stats.quota_blocked += 1
            if self.verbose:
                print(f"⛔ Not enough quota to search: {query}", file=sys.stderr)
            return []

        try:
            result = search()
        except ProviderError as e:
            self._record_usage(stats, e.quota_used, e.search_calls)
            raise
        self._record_usage(stats, result.quota_used, result.search_calls)

        collections = []
        seen = set()
        for summary in result.playlists:
            if summary.playlist_id in seen:
                continue
            seen.add(summary.playlist_id)
            collections.append(self._find_or_add(summary))

        self.catalog.search_cache.add(
            SearchCache(
                query=query,
                normalized_query=cache_key,
                source=self.source,
                search_type=SearchType.PLAYLIST_SEARCH,
                searched_at=self.clock(),
                result_count=len(result.playlists),
                quota_used=result.quota_used,
                result_collection_ids=[c.id for c in collections],
            )
        )

        return collections[:max_collections]

    def _record_usage(self, stats: OrchestratorStats, units: int, search_calls: int):
        stats.api_search_calls += search_calls
        stats.quota_used += units
        self.quota.increment(self.source, units, search_calls=search_calls)

    def _find_or_add(self, summary) -> Collection:
        existing = self.catalog.collections.get_by_external_id(self.source, summary.playlist_id)
        if existing is not None:
            return existing

        now = self.clock()
        collection = Collection(
            source=self.source,
            type=CollectionType.PLAYLIST,
            external_id=summary.playlist_id,
            title=summary.title,
            owner_name=summary.channel_title,
            thumbnail_url=summary.thumbnail_url,
            reported_track_count=summary.item_count or 0,
            created_at=now,
            updated_at=now,
        )
        return self.catalog.collections.add(collection)

    def _load_in_order(self, collection_ids: List[int]) -> List[Collection]:
        """Load collections, keeping the cached relevance order."""
        order = {cid: idx for idx, cid in enumerate(collection_ids)}
        collections = self.catalog.collections.get_by_ids(collection_ids)
        return sorted(collections, key=lambda c: order[c.id])
