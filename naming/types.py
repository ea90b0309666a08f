"""Value types produced by the filename parser."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True, frozen=True)
class EpisodeIdentity:
    """Show/season/episode triple recovered from a filename."""

    show_name: str
    season: int
    episode: int


@dataclass(slots=True, frozen=True)
class MovieIdentity:
    """Title and optional release year recovered from a filename."""

    title: str
    year: Optional[int] = None


__all__ = ["EpisodeIdentity", "MovieIdentity"]
