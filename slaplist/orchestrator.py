"""Recommendation orchestrator.

Flow for one request:
  1. discover collections related to each seed (search cache, then provider)
  2. sync each new collection's track list (skipped while still fresh)
  3. count in how many distinct collections every non-seed track shows up
  4. rank by that frequency

Everything runs sequentially. Collections and tracks are persisted as they
are discovered, so a cancelled run still leaves usable catalog data behind.
"""

import sys
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set

from .config import SEED_MODES, RecommendationSettings
from .discovery import CollectionDiscovery
from .models import (
    Collection,
    OrchestratorStats,
    QueryStatistic,
    RecommendationResult,
    Track,
    TrackScore,
    utcnow,
)
from .normalize import UNKNOWN_ARTIST
from .quota import QuotaManager
from .resolver import TrackResolver, is_input_track
from .sources.base import DiscoveryProvider
from .store.base import Catalog
from .sync import CollectionSync


class RecommendationCancelled(Exception):
    """The caller cancelled a recommendation run."""


def rank_scores(scores: Sequence[TrackScore], limit: int) -> List[TrackScore]:
    """Order scores by frequency (highest first), then title, and keep limit."""
    ordered = sorted(scores, key=lambda s: (-s.frequency, s.track.title, s.track.id or 0))
    return ordered[: max(0, limit)]


class RecommendationOrchestrator:
    """Turn seed queries into ranked track recommendations."""

    def __init__(
        self,
        catalog: Catalog,
        provider: DiscoveryProvider,
        settings: Optional[RecommendationSettings] = None,
        clock: Callable[[], datetime] = utcnow,
        verbose: bool = False,
    ):
        """Initialize orchestrator.

        Args:
            catalog: Repositories for every entity
            provider: Playlist provider (YouTube)
            settings: Cache ages, quota limits and unit costs
            clock: Returns the current aware UTC datetime
            verbose: Print progress to stderr
        """
        self.catalog = catalog
        self.provider = provider
        self.settings = settings or RecommendationSettings()
        self.clock = clock
        self.verbose = verbose

        self.quota = QuotaManager(catalog.quota, self.settings.quota_limits, clock)
        self.resolver = TrackResolver(catalog.tracks, provider.source, clock)
        self.discovery = CollectionDiscovery(
            catalog, provider, self.quota, self.settings, clock, verbose
        )
        self.sync = CollectionSync(
            catalog, provider, self.quota, self.resolver, self.settings, clock, verbose
        )

    def recommend(
        self,
        seeds: Sequence[str],
        collections_per_track: int = 5,
        results_to_return: int = 50,
        seed_mode: str = "query",
        diversify: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecommendationResult:
        """Get recommendations for a list of seeds.

        Args:
            seeds: Search queries, or video ids when seed_mode is "track_id"
            collections_per_track: New collections to process per seed
            results_to_return: Maximum number of recommendations
            seed_mode: "query" or "track_id"
            diversify: Exclude already processed playlist titles from searches
            cancel_event: Set it to abort the run

        Returns:
            Ranked recommendations and run statistics

        Raises:
            RecommendationCancelled: If cancel_event was set
        """
        if seed_mode not in SEED_MODES:
            raise ValueError(f"Invalid seed_mode {seed_mode!r}, expected one of {SEED_MODES}")

        seeds = [s.strip() for s in seeds if s and s.strip()]
        by_track_id = seed_mode == "track_id"
        started_at = self.clock()

        stats = OrchestratorStats()
        scores: Dict[int, TrackScore] = {}
        processed_ids: Set[int] = set()
        processed_titles: List[str] = []
        input_track_ids: Set[int] = set()
        # Video ids are matched exactly through seed_ids, never as text
        match_terms = [] if by_track_id else list(seeds)
        seed_ids = set(seeds) if by_track_id else set()

        for seed in seeds:
            self._check_cancelled(cancel_event)
            if self.verbose:
                print(f"🎵 Seed: {seed}", file=sys.stderr)

            excluded = list(processed_titles) if diversify else None
            if by_track_id:
                collections = self.discovery.discover_by_track_id(
                    seed, collections_per_track, stats, excluded
                )
            else:
                collections = self.discovery.discover(
                    seed, collections_per_track, stats, excluded
                )

            processed = 0
            for collection in collections:
                if processed >= collections_per_track:
                    break
                if collection.id in processed_ids:
                    continue
                self._check_cancelled(cancel_event)
                processed_ids.add(collection.id)

                self.sync.ensure_synced(collection, stats)
                processed_titles.append(collection.title)

                if by_track_id:
                    match_terms = self._track_id_terms(seeds)

                self._score_collection(collection, seed_ids, match_terms, input_track_ids, scores)
                processed += 1

        result = RecommendationResult(
            recommendations=rank_scores(list(scores.values()), results_to_return),
            stats=stats,
            total_unique_tracks_found=len(scores),
            collections_processed=len(processed_ids),
        )

        self.catalog.statistics.add(
            QueryStatistic.from_stats(seeds, stats, started_at, self.clock())
        )

        if self.verbose:
            print(
                f"✅ {result.total_unique_tracks_found} tracks from "
                f"{result.collections_processed} collections "
                f"({stats.total_api_calls} API calls, {stats.cache_hits} cache hits, "
                f"{stats.quota_used} units)",
                file=sys.stderr,
            )
        return result

    def _score_collection(
        self,
        collection: Collection,
        seed_ids: Set[str],
        match_terms: Sequence[str],
        input_track_ids: Set[int],
        scores: Dict[int, TrackScore],
    ):
        """Count every non-seed track of a collection once."""
        for _, track in self.catalog.collections.get_tracks(collection.id):
            if track.id in input_track_ids:
                continue
            if self._is_seed_track(track, seed_ids, match_terms):
                input_track_ids.add(track.id)
                continue

            score = scores.get(track.id)
            if score is None:
                score = scores[track.id] = TrackScore(track=track)
            score.frequency += 1
            score.found_in_collections.add(collection.title)

    def _is_seed_track(self, track: Track, seed_ids: Set[str], match_terms: Sequence[str]) -> bool:
        if seed_ids and track.external_id(self.provider.source) in seed_ids:
            return True
        return is_input_track(track, match_terms)

    def _track_id_terms(self, seeds: Sequence[str]) -> List[str]:
        """Names of the seed tracks already in the catalog."""
        terms = []
        for seed in seeds:
            track = self.catalog.tracks.get_by_external_id(self.provider.source, seed)
            if track is None:
                continue
            if track.artist == UNKNOWN_ARTIST:
                terms.append(track.title)
            else:
                terms.append(f"{track.artist} {track.title}")
        return terms

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise RecommendationCancelled("Recommendation run cancelled")
