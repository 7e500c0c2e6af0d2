"""Daily API quota accounting."""

from datetime import date, datetime
from typing import Callable, Dict, Optional

from .models import CollectionSource, QuotaTracker, utcnow
from .store.base import QuotaRepository


class QuotaManager:
    """Per-source, per-UTC-day budget of provider quota units.

    can_use() and increment() are separate round trips to the store. Two runs
    touching the same source can both pass can_use() before either increments,
    briefly overspending the day's budget. The increment itself is atomic.
    """

    def __init__(
        self,
        repository: QuotaRepository,
        limits: Optional[Dict[CollectionSource, int]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize quota manager.

        Args:
            repository: Quota row storage
            limits: Daily limit overrides per source
            clock: Returns the current aware UTC datetime
        """
        self.repository = repository
        self.limits = dict(limits or {})
        self.clock = clock

    def today(self) -> date:
        return self.clock().date()

    def daily_limit(self, source: CollectionSource) -> int:
        """Get the configured daily limit for a source."""
        if source in self.limits:
            return self.limits[source]
        return QuotaTracker.default_limit(source)

    def get_or_create_today(self, source: CollectionSource) -> QuotaTracker:
        """Get today's tracker for a source, creating it on first use."""
        return self.repository.get_or_create(self.today(), source, self.daily_limit(source))

    def can_use(self, source: CollectionSource, units_needed: int) -> bool:
        """Check if units_needed fit in what is left of today's budget."""
        return self.get_or_create_today(source).can_use(units_needed)

    def increment(
        self,
        source: CollectionSource,
        units: int,
        search_calls: int = 0,
        fetch_calls: int = 0,
    ) -> QuotaTracker:
        """Record usage against today's budget.

        Args:
            source: Source whose budget was spent
            units: Quota units the provider reported
            search_calls: Number of search calls made
            fetch_calls: Number of fetch calls made

        Returns:
            Updated tracker
        """
        return self.repository.increment(
            self.today(),
            source,
            self.daily_limit(source),
            units,
            search_calls=search_calls,
            fetch_calls=fetch_calls,
        )
