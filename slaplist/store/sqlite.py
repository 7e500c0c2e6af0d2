"""SQLite-backed catalog."""

from __future__ import annotations

import json
import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from ..models import (
    Collection,
    CollectionSource,
    CollectionTrack,
    CollectionType,
    QueryStatistic,
    QuotaTracker,
    SearchCache,
    SearchType,
    Track,
)
from .base import (
    Catalog,
    CollectionRepository,
    QueryStatisticRepository,
    QuotaRepository,
    SearchCacheRepository,
    TrackRepository,
)

MEMORY = ":memory:"

_EXTERNAL_ID_COLUMNS = {
    CollectionSource.YOUTUBE: "youtube_video_id",
    CollectionSource.DISCOGS: "discogs_release_id",
    CollectionSource.BANDCAMP: "bandcamp_url",
}


def ensure_catalog_tables(conn: sqlite3.Connection) -> None:
    """Ensure catalog tables and indexes exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS tracks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            artist TEXT NOT NULL,
            title TEXT NOT NULL,
            normalized_artist TEXT NOT NULL,
            normalized_title TEXT NOT NULL,
            youtube_video_id TEXT,
            discogs_release_id TEXT,
            discogs_master_id TEXT,
            bandcamp_url TEXT,
            label TEXT,
            genre TEXT,
            bpm INTEGER,
            musical_key TEXT,
            release_year INTEGER,
            duration_seconds INTEGER,
            raw_titles_json TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_enriched_at TEXT
        )
        """
    )
    cur.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_tracks_youtube_video_id "
        "ON tracks (youtube_video_id) WHERE youtube_video_id IS NOT NULL"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_tracks_discogs_release_id "
        "ON tracks (discogs_release_id) WHERE discogs_release_id IS NOT NULL"
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_tracks_normalized "
        "ON tracks (normalized_artist, normalized_title)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS collections (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source TEXT NOT NULL,
            type TEXT NOT NULL,
            external_id TEXT NOT NULL,
            title TEXT NOT NULL DEFAULT '',
            description TEXT,
            owner_name TEXT,
            owner_external_id TEXT,
            thumbnail_url TEXT,
            reported_track_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_synced_at TEXT,
            sync_complete INTEGER NOT NULL DEFAULT 0,
            UNIQUE (source, external_id)
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_collections_last_synced_at "
        "ON collections (last_synced_at)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS collection_tracks (
            collection_id INTEGER NOT NULL,
            track_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            added_to_collection_at TEXT,
            discovered_at TEXT NOT NULL,
            PRIMARY KEY (collection_id, track_id),
            FOREIGN KEY (collection_id) REFERENCES collections(id) ON DELETE CASCADE,
            FOREIGN KEY (track_id) REFERENCES tracks(id) ON DELETE CASCADE
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_collection_tracks_track "
        "ON collection_tracks (track_id)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS search_cache (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            query TEXT NOT NULL,
            normalized_query TEXT NOT NULL,
            source TEXT NOT NULL,
            search_type TEXT NOT NULL,
            searched_at TEXT NOT NULL,
            result_count INTEGER NOT NULL DEFAULT 0,
            quota_used INTEGER NOT NULL DEFAULT 0,
            result_collection_ids_json TEXT NOT NULL DEFAULT '[]',
            result_track_ids_json TEXT NOT NULL DEFAULT '[]'
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_search_cache_lookup "
        "ON search_cache (normalized_query, source, search_type, searched_at DESC)"
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS quota_trackers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            day TEXT NOT NULL,
            source TEXT NOT NULL,
            units_used INTEGER NOT NULL DEFAULT 0,
            search_calls INTEGER NOT NULL DEFAULT 0,
            fetch_calls INTEGER NOT NULL DEFAULT 0,
            daily_limit INTEGER NOT NULL,
            UNIQUE (day, source)
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS query_statistics (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            input_queries_json TEXT NOT NULL,
            api_search_calls INTEGER NOT NULL DEFAULT 0,
            api_fetch_calls INTEGER NOT NULL DEFAULT 0,
            cache_hits INTEGER NOT NULL DEFAULT 0,
            quota_blocked INTEGER NOT NULL DEFAULT 0,
            quota_used INTEGER NOT NULL DEFAULT 0,
            started_at TEXT NOT NULL,
            completed_at TEXT NOT NULL
        )
        """
    )
    conn.commit()


def _dt_to_db(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt_from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_track(row: sqlite3.Row) -> Track:
    return Track(
        id=int(row["id"]),
        artist=row["artist"],
        title=row["title"],
        normalized_artist=row["normalized_artist"],
        normalized_title=row["normalized_title"],
        youtube_video_id=row["youtube_video_id"],
        discogs_release_id=row["discogs_release_id"],
        discogs_master_id=row["discogs_master_id"],
        bandcamp_url=row["bandcamp_url"],
        label=row["label"],
        genre=row["genre"],
        bpm=row["bpm"],
        key=row["musical_key"],
        release_year=row["release_year"],
        duration_seconds=row["duration_seconds"],
        raw_titles_encountered=json.loads(row["raw_titles_json"] or "[]"),
        created_at=_dt_from_db(row["created_at"]),
        updated_at=_dt_from_db(row["updated_at"]),
        last_enriched_at=_dt_from_db(row["last_enriched_at"]),
    )


def _row_to_collection(row: sqlite3.Row) -> Collection:
    return Collection(
        id=int(row["id"]),
        source=CollectionSource(row["source"]),
        type=CollectionType(row["type"]),
        external_id=row["external_id"],
        title=row["title"],
        description=row["description"],
        owner_name=row["owner_name"],
        owner_external_id=row["owner_external_id"],
        thumbnail_url=row["thumbnail_url"],
        reported_track_count=int(row["reported_track_count"]),
        created_at=_dt_from_db(row["created_at"]),
        updated_at=_dt_from_db(row["updated_at"]),
        last_synced_at=_dt_from_db(row["last_synced_at"]),
        sync_complete=bool(row["sync_complete"]),
    )


def _row_to_search_cache(row: sqlite3.Row) -> SearchCache:
    return SearchCache(
        id=int(row["id"]),
        query=row["query"],
        normalized_query=row["normalized_query"],
        source=CollectionSource(row["source"]),
        search_type=SearchType(row["search_type"]),
        searched_at=_dt_from_db(row["searched_at"]),
        result_count=int(row["result_count"]),
        quota_used=int(row["quota_used"]),
        result_collection_ids=[int(i) for i in json.loads(row["result_collection_ids_json"])],
        result_track_ids=[int(i) for i in json.loads(row["result_track_ids_json"])],
    )


def _row_to_quota(row: sqlite3.Row) -> QuotaTracker:
    return QuotaTracker(
        id=int(row["id"]),
        day=date.fromisoformat(row["day"]),
        source=CollectionSource(row["source"]),
        daily_limit=int(row["daily_limit"]),
        units_used=int(row["units_used"]),
        search_calls=int(row["search_calls"]),
        fetch_calls=int(row["fetch_calls"]),
    )


def _row_to_statistic(row: sqlite3.Row) -> QueryStatistic:
    return QueryStatistic(
        id=int(row["id"]),
        input_queries=json.loads(row["input_queries_json"]),
        api_search_calls=int(row["api_search_calls"]),
        api_fetch_calls=int(row["api_fetch_calls"]),
        cache_hits=int(row["cache_hits"]),
        quota_blocked=int(row["quota_blocked"]),
        quota_used=int(row["quota_used"]),
        started_at=_dt_from_db(row["started_at"]),
        completed_at=_dt_from_db(row["completed_at"]),
    )


class SQLiteTrackRepository(TrackRepository):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _one(self, sql: str, params: tuple) -> Optional[Track]:
        row = self.conn.execute(sql, params).fetchone()
        return _row_to_track(row) if row else None

    def get_by_id(self, track_id: int) -> Optional[Track]:
        return self._one("SELECT * FROM tracks WHERE id=?", (track_id,))

    def get_by_external_id(self, source: CollectionSource, external_id: str) -> Optional[Track]:
        column = _EXTERNAL_ID_COLUMNS[source]
        return self._one(
            f"SELECT * FROM tracks WHERE {column}=? ORDER BY id ASC LIMIT 1", (external_id,)
        )

    def find_by_artist_title(self, normalized_artist: str, normalized_title: str) -> Optional[Track]:
        return self._one(
            """
            SELECT * FROM tracks
            WHERE normalized_artist=? AND normalized_title=?
            ORDER BY id ASC
            LIMIT 1
            """,
            (normalized_artist, normalized_title),
        )

    def search(self, query: str, limit: int = 50) -> List[Track]:
        needle = (query or "").strip().lower()
        if not needle:
            return []
        rows = self.conn.execute(
            """
            SELECT * FROM tracks
            WHERE instr(lower(artist), ?) > 0 OR instr(lower(title), ?) > 0
            ORDER BY artist ASC, title ASC
            LIMIT ?
            """,
            (needle, needle, limit),
        ).fetchall()
        return [_row_to_track(row) for row in rows]

    def get_most_connected(self, limit: int = 50) -> List[Tuple[Track, int]]:
        rows = self.conn.execute(
            """
            SELECT t.*, COUNT(ct.collection_id) AS collection_count
            FROM tracks t
            JOIN collection_tracks ct ON ct.track_id = t.id
            GROUP BY t.id
            ORDER BY collection_count DESC, t.title ASC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [(_row_to_track(row), int(row["collection_count"])) for row in rows]

    def get_needing_enrichment(self, limit: int = 100) -> List[Track]:
        rows = self.conn.execute(
            """
            SELECT * FROM tracks
            WHERE last_enriched_at IS NULL AND artist != ''
            ORDER BY id ASC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [_row_to_track(row) for row in rows]

    def _values(self, track: Track) -> tuple:
        return (
            track.artist,
            track.title,
            track.normalized_artist,
            track.normalized_title,
            track.youtube_video_id,
            track.discogs_release_id,
            track.discogs_master_id,
            track.bandcamp_url,
            track.label,
            track.genre,
            track.bpm,
            track.key,
            track.release_year,
            track.duration_seconds,
            json.dumps(track.raw_titles_encountered),
            _dt_to_db(track.created_at),
            _dt_to_db(track.updated_at),
            _dt_to_db(track.last_enriched_at),
        )

    def add(self, track: Track) -> Track:
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO tracks (
                    artist, title, normalized_artist, normalized_title,
                    youtube_video_id, discogs_release_id, discogs_master_id, bandcamp_url,
                    label, genre, bpm, musical_key, release_year, duration_seconds,
                    raw_titles_json, created_at, updated_at, last_enriched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._values(track),
            )
        track.id = int(cur.lastrowid)
        return track

    def update(self, track: Track):
        if track.id is None:
            raise ValueError("Cannot update a track that was never added")
        with self.conn:
            self.conn.execute(
                """
                UPDATE tracks SET
                    artist=?, title=?, normalized_artist=?, normalized_title=?,
                    youtube_video_id=?, discogs_release_id=?, discogs_master_id=?, bandcamp_url=?,
                    label=?, genre=?, bpm=?, musical_key=?, release_year=?, duration_seconds=?,
                    raw_titles_json=?, created_at=?, updated_at=?, last_enriched_at=?
                WHERE id=?
                """,
                self._values(track) + (track.id,),
            )

    def count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0])


class SQLiteCollectionRepository(CollectionRepository):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get_by_id(self, collection_id: int) -> Optional[Collection]:
        row = self.conn.execute(
            "SELECT * FROM collections WHERE id=?", (collection_id,)
        ).fetchone()
        return _row_to_collection(row) if row else None

    def get_by_ids(self, collection_ids: Sequence[int]) -> List[Collection]:
        ids = list(collection_ids)
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT * FROM collections WHERE id IN ({placeholders})", tuple(ids)
        ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def get_by_external_id(self, source: CollectionSource, external_id: str) -> Optional[Collection]:
        row = self.conn.execute(
            "SELECT * FROM collections WHERE source=? AND external_id=?",
            (source.value, external_id),
        ).fetchone()
        return _row_to_collection(row) if row else None

    def get_needing_sync(
        self,
        source: CollectionSource,
        max_age: timedelta,
        now: datetime,
        limit: int = 20,
    ) -> List[Collection]:
        cutoff = _dt_to_db(now - max_age)
        rows = self.conn.execute(
            """
            SELECT * FROM collections
            WHERE source=?
              AND (last_synced_at IS NULL OR last_synced_at < ? OR sync_complete = 0)
            ORDER BY last_synced_at IS NOT NULL, last_synced_at ASC, id ASC
            LIMIT ?
            """,
            (source.value, cutoff, limit),
        ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def get_containing_track(self, track_id: int) -> List[Collection]:
        rows = self.conn.execute(
            """
            SELECT c.* FROM collections c
            JOIN collection_tracks ct ON ct.collection_id = c.id
            WHERE ct.track_id=?
            ORDER BY c.id ASC
            """,
            (track_id,),
        ).fetchall()
        return [_row_to_collection(row) for row in rows]

    def get_tracks(self, collection_id: int) -> List[Tuple[CollectionTrack, Track]]:
        rows = self.conn.execute(
            """
            SELECT ct.collection_id AS ct_collection_id,
                   ct.position AS ct_position,
                   ct.discovered_at AS ct_discovered_at,
                   ct.added_to_collection_at AS ct_added_at,
                   t.*
            FROM collection_tracks ct
            JOIN tracks t ON t.id = ct.track_id
            WHERE ct.collection_id=?
            ORDER BY ct.position ASC
            """,
            (collection_id,),
        ).fetchall()
        result = []
        for row in rows:
            track = _row_to_track(row)
            membership = CollectionTrack(
                collection_id=int(row["ct_collection_id"]),
                track_id=track.id,
                position=int(row["ct_position"]),
                discovered_at=_dt_from_db(row["ct_discovered_at"]),
                added_to_collection_at=_dt_from_db(row["ct_added_at"]),
            )
            result.append((membership, track))
        return result

    def _values(self, collection: Collection) -> tuple:
        return (
            collection.source.value,
            collection.type.value,
            collection.external_id,
            collection.title or "",
            collection.description,
            collection.owner_name,
            collection.owner_external_id,
            collection.thumbnail_url,
            collection.reported_track_count,
            _dt_to_db(collection.created_at),
            _dt_to_db(collection.updated_at),
            _dt_to_db(collection.last_synced_at),
            int(collection.sync_complete),
        )

    def add(self, collection: Collection) -> Collection:
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO collections (
                    source, type, external_id, title, description, owner_name,
                    owner_external_id, thumbnail_url, reported_track_count,
                    created_at, updated_at, last_synced_at, sync_complete
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._values(collection),
            )
        collection.id = int(cur.lastrowid)
        return collection

    def _update(self, collection: Collection):
        if collection.id is None:
            raise ValueError("Cannot update a collection that was never added")
        self.conn.execute(
            """
            UPDATE collections SET
                source=?, type=?, external_id=?, title=?, description=?, owner_name=?,
                owner_external_id=?, thumbnail_url=?, reported_track_count=?,
                created_at=?, updated_at=?, last_synced_at=?, sync_complete=?
            WHERE id=?
            """,
            self._values(collection) + (collection.id,),
        )

    def update(self, collection: Collection):
        with self.conn:
            self._update(collection)

    def replace_tracks(self, collection: Collection, entries: Sequence[CollectionTrack]):
        with self.conn:
            self._update(collection)
            self.conn.execute(
                "DELETE FROM collection_tracks WHERE collection_id=?", (collection.id,)
            )
            self.conn.executemany(
                """
                INSERT INTO collection_tracks (
                    collection_id, track_id, position, added_to_collection_at, discovered_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (
                        collection.id,
                        entry.track_id,
                        entry.position,
                        _dt_to_db(entry.added_to_collection_at),
                        _dt_to_db(entry.discovered_at),
                    )
                    for entry in entries
                ],
            )

    def count(self, source: Optional[CollectionSource] = None) -> int:
        if source is None:
            row = self.conn.execute("SELECT COUNT(*) FROM collections").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM collections WHERE source=?", (source.value,)
            ).fetchone()
        return int(row[0])


class SQLiteSearchCacheRepository(SearchCacheRepository):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find_valid(
        self,
        normalized_query: str,
        source: CollectionSource,
        search_type: SearchType,
        max_age: timedelta,
        now: datetime,
    ) -> Optional[SearchCache]:
        row = self.conn.execute(
            """
            SELECT * FROM search_cache
            WHERE normalized_query=? AND source=? AND search_type=?
            ORDER BY searched_at DESC, id DESC
            LIMIT 1
            """,
            (normalized_query, source.value, search_type.value),
        ).fetchone()
        if not row:
            return None
        entry = _row_to_search_cache(row)
        if entry.is_expired(max_age, now):
            return None
        return entry

    def add(self, entry: SearchCache) -> SearchCache:
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO search_cache (
                    query, normalized_query, source, search_type, searched_at,
                    result_count, quota_used, result_collection_ids_json, result_track_ids_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.query,
                    entry.normalized_query,
                    entry.source.value,
                    entry.search_type.value,
                    _dt_to_db(entry.searched_at),
                    entry.result_count,
                    entry.quota_used,
                    json.dumps(entry.result_collection_ids),
                    json.dumps(entry.result_track_ids),
                ),
            )
        entry.id = int(cur.lastrowid)
        return entry


class SQLiteQuotaRepository(QuotaRepository):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def _get(self, day: date, source: CollectionSource) -> QuotaTracker:
        row = self.conn.execute(
            "SELECT * FROM quota_trackers WHERE day=? AND source=?",
            (day.isoformat(), source.value),
        ).fetchone()
        return _row_to_quota(row)

    def get_or_create(self, day: date, source: CollectionSource, daily_limit: int) -> QuotaTracker:
        with self.conn:
            self.conn.execute(
                """
                INSERT OR IGNORE INTO quota_trackers (day, source, daily_limit)
                VALUES (?, ?, ?)
                """,
                (day.isoformat(), source.value, daily_limit),
            )
        return self._get(day, source)

    def increment(
        self,
        day: date,
        source: CollectionSource,
        daily_limit: int,
        units: int,
        search_calls: int = 0,
        fetch_calls: int = 0,
    ) -> QuotaTracker:
        # Single statement, so concurrent increments never lose updates.
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO quota_trackers (
                    day, source, daily_limit, units_used, search_calls, fetch_calls
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (day, source) DO UPDATE SET
                    units_used = units_used + excluded.units_used,
                    search_calls = search_calls + excluded.search_calls,
                    fetch_calls = fetch_calls + excluded.fetch_calls
                """,
                (day.isoformat(), source.value, daily_limit, units, search_calls, fetch_calls),
            )
        return self._get(day, source)


class SQLiteQueryStatisticRepository(QueryStatisticRepository):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def add(self, statistic: QueryStatistic) -> QueryStatistic:
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO query_statistics (
                    input_queries_json, api_search_calls, api_fetch_calls, cache_hits,
                    quota_blocked, quota_used, started_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    json.dumps(statistic.input_queries),
                    statistic.api_search_calls,
                    statistic.api_fetch_calls,
                    statistic.cache_hits,
                    statistic.quota_blocked,
                    statistic.quota_used,
                    _dt_to_db(statistic.started_at),
                    _dt_to_db(statistic.completed_at),
                ),
            )
        statistic.id = int(cur.lastrowid)
        return statistic

    def recent(self, limit: int = 20) -> List[QueryStatistic]:
        rows = self.conn.execute(
            "SELECT * FROM query_statistics ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [_row_to_statistic(row) for row in rows]


class SQLiteCatalog(Catalog):
    """Catalog stored in a single SQLite database file."""

    def __init__(self, db_path: Union[str, Path] = MEMORY):
        """Open (and if needed create) the catalog.

        Args:
            db_path: Database file, or ":memory:" for a throwaway catalog
        """
        self.db_path = str(db_path)
        if self.db_path != MEMORY:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        ensure_catalog_tables(self.conn)

        self.tracks = SQLiteTrackRepository(self.conn)
        self.collections = SQLiteCollectionRepository(self.conn)
        self.search_cache = SQLiteSearchCacheRepository(self.conn)
        self.quota = SQLiteQuotaRepository(self.conn)
        self.statistics = SQLiteQueryStatisticRepository(self.conn)

    def close(self):
        self.conn.close()
