"""Track identity resolution (find-or-create)."""

from datetime import datetime
from typing import Callable, Iterable

from .models import CollectionSource, Track, utcnow
from .normalize import normalize_artist, normalize_title, parse_artist_title
from .sources.base import PlaylistTrackEntry
from .store.base import TrackRepository


class TrackResolver:
    """Match raw provider metadata to a catalog track, creating one if needed.

    Resolution order, first hit wins:
      1. exact external id on the source
      2. exact normalized artist + title parsed from the raw title
      3. a new track

    Resolving the same input twice never creates a second track, but each call
    may record a new raw title and touches updated_at.
    """

    def __init__(
        self,
        tracks: TrackRepository,
        source: CollectionSource = CollectionSource.YOUTUBE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tracks = tracks
        self.source = source
        self.clock = clock

    def resolve(self, entry: PlaylistTrackEntry) -> Track:
        """Find or create the track for a playlist entry.

        Args:
            entry: Raw item from a provider listing

        Returns:
            Persisted track (always has an id)
        """
        existing = self.tracks.get_by_external_id(self.source, entry.video_id)
        if existing is not None:
            existing.add_raw_title(entry.raw_title)
            existing.updated_at = self.clock()
            self.tracks.update(existing)
            return existing

        artist, title = parse_artist_title(entry.raw_title)
        normalized_artist = normalize_artist(artist)
        normalized_title = normalize_title(title)

        existing = self.tracks.find_by_artist_title(normalized_artist, normalized_title)
        if existing is not None:
            # Same recording seen through another upload or source
            if existing.external_id(self.source) is None:
                existing.set_external_id(self.source, entry.video_id)
            existing.add_raw_title(entry.raw_title)
            existing.updated_at = self.clock()
            self.tracks.update(existing)
            return existing

        now = self.clock()
        track = Track(
            artist=artist,
            title=title,
            normalized_artist=normalized_artist,
            normalized_title=normalized_title,
            duration_seconds=entry.duration_seconds,
            raw_titles_encountered=[entry.raw_title],
            created_at=now,
            updated_at=now,
        )
        track.set_external_id(self.source, entry.video_id)
        return self.tracks.add(track)


def is_input_track(track: Track, input_terms: Iterable[str]) -> bool:
    """Check whether a track is one of the seeds it was discovered from.

    A track matches a seed term when "artist title" contains the term, or the
    term contains the track's normalized title or normalized artist. Empty
    normalized fields never match.
    """
    track_full = f"{track.artist} {track.title}".lower()

    for term in input_terms:
        term_lower = term.lower()
        if not term_lower:
            continue
        if term_lower in track_full:
            return True
        if track.normalized_title and track.normalized_title in term_lower:
            return True
        if track.normalized_artist and track.normalized_artist in term_lower:
            return True
    return False
