"""Catalog persistence."""

from .base import (
    Catalog,
    CollectionRepository,
    QueryStatisticRepository,
    QuotaRepository,
    SearchCacheRepository,
    TrackRepository,
)
from .sqlite import SQLiteCatalog

__all__ = [
    "Catalog",
    "CollectionRepository",
    "QueryStatisticRepository",
    "QuotaRepository",
    "SQLiteCatalog",
    "SearchCacheRepository",
    "TrackRepository",
]
