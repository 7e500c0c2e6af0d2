"""Tests for track identity resolution."""

from slaplist.models import CollectionSource, Track
from slaplist.resolver import TrackResolver, is_input_track
from slaplist.sources.base import PlaylistTrackEntry


def entry(video_id, raw_title):
    return PlaylistTrackEntry(video_id=video_id, raw_title=raw_title)


class TestResolve:
    def test_creates_track(self, catalog, clock):
        resolver = TrackResolver(catalog.tracks, clock=clock)
        track = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time (Official Video)"))

        assert track.id is not None
        assert track.artist == "Daft Punk"
        assert track.title == "One More Time (Official Video)"
        assert track.normalized_artist == "daft punk"
        assert track.normalized_title == "one more time"
        assert track.youtube_video_id == "vid00000001"
        assert track.raw_titles_encountered == ["Daft Punk - One More Time (Official Video)"]
        assert track.created_at == clock.now

    def test_same_video_twice(self, catalog, clock):
        resolver = TrackResolver(catalog.tracks, clock=clock)
        first = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time"))
        clock.advance(hours=1)
        second = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time"))

        assert first.id == second.id
        assert catalog.tracks.count() == 1
        stored = catalog.tracks.get_by_id(first.id)
        assert stored.raw_titles_encountered == ["Daft Punk - One More Time"]
        assert stored.updated_at == clock.now

    def test_new_raw_title_for_known_video(self, catalog, clock):
        resolver = TrackResolver(catalog.tracks, clock=clock)
        track = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time"))
        resolver.resolve(entry("vid00000001", "One More Time - Daft Punk (renamed)"))

        stored = catalog.tracks.get_by_id(track.id)
        assert stored.raw_titles_encountered == [
            "Daft Punk - One More Time",
            "One More Time - Daft Punk (renamed)",
        ]

    def test_other_upload_matches_by_name(self, catalog, clock):
        resolver = TrackResolver(catalog.tracks, clock=clock)
        first = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time"))
        second = resolver.resolve(entry("vid00000002", "Daft Punk - One More Time [HD]"))

        assert first.id == second.id
        assert catalog.tracks.count() == 1
        # The first upload keeps the external id
        assert catalog.tracks.get_by_id(first.id).youtube_video_id == "vid00000001"

    def test_backfills_missing_external_id(self, catalog, clock):
        existing = catalog.tracks.add(
            Track("Daft Punk", "One More Time", "daft punk", "one more time")
        )
        resolver = TrackResolver(catalog.tracks, clock=clock)
        track = resolver.resolve(entry("vid00000001", "Daft Punk - One More Time"))

        assert track.id == existing.id
        assert catalog.tracks.get_by_external_id(CollectionSource.YOUTUBE, "vid00000001").id == existing.id

    def test_unparseable_title(self, catalog, clock):
        resolver = TrackResolver(catalog.tracks, clock=clock)
        track = resolver.resolve(entry("vid00000001", "One More Time"))

        assert track.artist == "Unknown"
        assert track.title == "One More Time"


class TestIsInputTrack:
    def track(self, artist, title):
        from slaplist.normalize import normalize_artist, normalize_title

        return Track(artist, title, normalize_artist(artist), normalize_title(title))

    def test_query_contains_title(self):
        assert is_input_track(self.track("Daft Punk", "One More Time"), ["daft punk one more time"])

    def test_track_contains_query(self):
        assert is_input_track(self.track("Daft Punk", "One More Time"), ["One More"])

    def test_query_contains_artist(self):
        # Other tracks by a seed artist count as seeds too
        assert is_input_track(self.track("Daft Punk", "Aerodynamic"), ["daft punk one more time"])

    def test_unrelated(self):
        assert not is_input_track(self.track("Justice", "Genesis"), ["daft punk one more time"])

    def test_empty_fields_never_match(self):
        assert not is_input_track(Track("", "", "", ""), ["daft punk one more time"])
