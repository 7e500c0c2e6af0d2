"""Text normalization for track identity matching."""

import re
from typing import Optional, Tuple

UNKNOWN_ARTIST = "Unknown"

# Tried in order: spaced double hyphen, em dash, en dash, spaced hyphen, pipe,
# then a bare double hyphen.
ARTIST_TITLE_SEPARATORS = (" -- ", " — ", " – ", " - ", " | ", "--")

# Qualifiers that never distinguish one recording from another.
# Remix, Live and Edit markers are kept.
_TITLE_QUALIFIERS = [
    r"official\s+(?:music\s+|lyric\s+)?video",
    r"official\s+audio",
    r"official\s+visuali[sz]er",
    r"music\s+video",
    r"lyric\s+video",
    r"lyrics?",
    r"audio",
    r"visuali[sz]er",
    r"original\s+mix",
    r"full",
    r"hd",
    r"hq",
    r"4k",
]

_TITLE_NOISE = [
    re.compile(r"[\(\[]\s*(?:" + "|".join(_TITLE_QUALIFIERS) + r")\s*[\)\]]"),
]

_ARTIST_NOISE = [
    re.compile(r"\s*-\s*topic\s*$"),  # "Artist - Topic" auto-generated channels
    re.compile(r"vevo"),
]

_WHITESPACE = re.compile(r"\s+")


def _strip_noise(text: str, patterns) -> str:
    """Lowercase, drop noise and collapse whitespace until nothing changes."""
    text = _WHITESPACE.sub(" ", text.lower()).strip()
    while True:
        cleaned = text
        for pattern in patterns:
            cleaned = pattern.sub("", cleaned)
        cleaned = _WHITESPACE.sub(" ", cleaned).strip()
        if cleaned == text:
            return cleaned
        text = cleaned


def normalize_artist(artist: Optional[str]) -> str:
    """Normalize an artist name for matching.

    Args:
        artist: Display artist or channel name

    Returns:
        Lowercased artist without channel suffixes, empty for blank input
    """
    if not artist or not artist.strip():
        return ""
    return _strip_noise(artist, _ARTIST_NOISE)


def normalize_title(title: Optional[str]) -> str:
    """Normalize a track title for matching.

    Args:
        title: Display title

    Returns:
        Lowercased title without upload qualifiers, empty for blank input
    """
    if not title or not title.strip():
        return ""
    return _strip_noise(title, _TITLE_NOISE)


def normalize_query(query: Optional[str]) -> str:
    """Lowercase and trim a search query."""
    if not query or not query.strip():
        return ""
    return query.lower().strip()


def parse_artist_title(raw: Optional[str]) -> Tuple[str, str]:
    """Split an "Artist - Title" style upload title.

    The first separator (in ARTIST_TITLE_SEPARATORS order) that leaves text on
    both sides wins. Titles without one are attributed to an unknown artist.

    Args:
        raw: Raw title as shown by the platform

    Returns:
        Tuple of (artist, title)
    """
    if not raw or not raw.strip():
        return UNKNOWN_ARTIST, UNKNOWN_ARTIST

    for separator in ARTIST_TITLE_SEPARATORS:
        idx = raw.find(separator)
        if idx > 0:
            artist = raw[:idx].strip()
            title = raw[idx + len(separator):].strip()
            if artist and title:
                return artist, title

    return UNKNOWN_ARTIST, raw.strip()
