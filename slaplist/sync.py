"""Collection sync: keep a collection's track list fresh."""

import sys
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .config import RecommendationSettings
from .models import Collection, CollectionTrack, OrchestratorStats, utcnow
from .quota import QuotaManager
from .resolver import TrackResolver
from .sources.base import DiscoveryProvider, ProviderError
from .store.base import Catalog


class CollectionSync:
    """Refresh a collection's membership from its provider when stale."""

    def __init__(
        self,
        catalog: Catalog,
        provider: DiscoveryProvider,
        quota: QuotaManager,
        resolver: TrackResolver,
        settings: RecommendationSettings,
        clock: Callable[[], datetime] = utcnow,
        verbose: bool = False,
    ):
        self.catalog = catalog
        self.provider = provider
        self.quota = quota
        self.resolver = resolver
        self.settings = settings
        self.clock = clock
        self.verbose = verbose

    def is_fresh(self, collection: Collection, max_age: timedelta) -> bool:
        """Check whether a collection was fully synced within max_age."""
        return collection.sync_complete and not collection.needs_sync(max_age, self.clock())

    def ensure_synced(
        self,
        collection: Collection,
        stats: OrchestratorStats,
        max_age: Optional[timedelta] = None,
    ) -> bool:
        """Make sure a collection's tracks are stored and fresh.

        Args:
            collection: Collection to refresh, updated in place
            stats: Run statistics to update
            max_age: Staleness window, defaults to the configured one

        Returns:
            True if the provider was called and the membership rebuilt
        """
        if max_age is None:
            max_age = self.settings.collection_sync_max_age

        if self.is_fresh(collection, max_age):
            stats.cache_hits += 1
            return False

        source = collection.source
        if not self.quota.can_use(source, self.settings.fetch_unit_cost):
            stats.quota_blocked += 1
            if self.verbose:
                print(f"⛔ Not enough quota to sync: {collection.title}", file=sys.stderr)
            return False

        try:
            result = self.provider.get_collection_tracks(collection.external_id)
        except ProviderError as e:
            self._record_usage(stats, source, e.quota_used, e.fetch_calls)
            raise
        self._record_usage(stats, source, result.quota_used, result.fetch_calls)

        entries: List[CollectionTrack] = []
        seen_videos = set()
        seen_tracks = set()
        for item in result.tracks:
            if item.unavailable:
                continue
            if item.video_id in seen_videos:
                continue
            seen_videos.add(item.video_id)

            track = self.resolver.resolve(item)
            # Two uploads of one recording resolve to the same track
            if track.id in seen_tracks:
                continue
            seen_tracks.add(track.id)

            entries.append(
                CollectionTrack(
                    collection_id=collection.id,
                    track_id=track.id,
                    position=len(entries),
                    discovered_at=self.clock(),
                )
            )

        now = self.clock()
        if result.title:
            collection.title = result.title
        if result.channel_title:
            collection.owner_name = result.channel_title
        collection.reported_track_count = len(result.tracks)
        collection.last_synced_at = now
        collection.updated_at = now
        collection.sync_complete = True
        self.catalog.collections.replace_tracks(collection, entries)

        if self.verbose:
            print(f"🔄 Synced {collection.title}: {len(entries)} tracks", file=sys.stderr)
        return True

    def _record_usage(self, stats: OrchestratorStats, source, units: int, fetch_calls: int):
        stats.api_fetch_calls += fetch_calls
        stats.quota_used += units
        self.quota.increment(source, units, fetch_calls=fetch_calls)
