"""Slaplist - music recommendations from playlist co-occurrence."""

__version__ = "0.3.0"
