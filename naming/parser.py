"""Pure filename and folder-name parsing helpers.

Nothing in this module touches the filesystem: every function maps a path
segment to a structured identity so the scanner can unit-test naming rules
without a library on disk.
"""
from __future__ import annotations

import re
from pathlib import PurePath
from typing import Iterable, Optional, Tuple

from .types import EpisodeIdentity, MovieIdentity

MIN_YEAR = 1900
MAX_YEAR = 2100

_SEASON_EPISODE = re.compile(r"[Ss](\d{1,2})[Ee](\d{1,3})")
_LOOSE_SEASON_EPISODE = re.compile(r"(?:^|[\s\-])[Ee]?(\d{1,2})[Ee](\d{1,3})(?:\s|[\[\(]|$)")
_TRAILING_EPISODE = re.compile(r"[\s\-]+[Ee]?(\d{1,3})(?:\s*[\[\(]|$)")
_GROUP_TAG = re.compile(r"^\[.*?\]\s*-?\s*")
_RELEASE_INFO = re.compile(
    r"\s*\b(1080p|720p|480p|2160p|4k|bluray|blu-ray|webrip|web-dl|hdtv|dvdrip|bdrip|x264|x265"
    r"|h\.?264|h\.?265|hevc|avc|aac|opus|flac|dts|atmos|10bit|hdr|sdr|remux|proper|repack"
    r"|multi|dual|dubbed|subbed|raw|opus2|aac2|batch|dvd9|dvd5|complete)\b.*$",
    re.IGNORECASE,
)
_SEASON_RANGE = re.compile(r"\s+S\d{1,2}(?:-S?\d{1,2})?(?:\s|$).*$", re.IGNORECASE)
_FOLDER_RELEASE = re.compile(
    r"[\s.](1080p|720p|480p|2160p|4k|bluray|blu-ray|webrip|web-dl|web|hdtv|dvdrip|bdrip|x264"
    r"|x265|h\.?264|h\.?265|hevc|avc|aac|opus|flac|dts|atmos|10bit|10-bit|hdr|sdr|remux|proper"
    r"|repack|multi|dual|dubbed|subbed|raw|nf|cr|amzn|dsnp|hmax|hulu|complete|batch)\b.*$",
    re.IGNORECASE,
)
_GROUP_SUFFIX = re.compile(r"\s*-[A-Za-z0-9]+$")
_BRACKETED = re.compile(r"\s*\[[^\]]*\]\s*")
_PAREN_RELEASE = re.compile(r"\s*\((?:BD|DVD|BluRay|BDRip|WEB|HDTV|V\d+|\d{3,4}p)[^)]*\)\s*")
_MOVIE_YEAR = re.compile(r"^(.+?)[\s.\-]*[(\[]?(\d{4})[)\]]?\s*$")
_WHITESPACE = re.compile(r"\s+")
_NON_NAME_CHARS = re.compile(r"[^\w\- ]+|_")


def _stem(filename: str) -> str:
    name = PurePath(filename).name
    if "." in name:
        return name.rsplit(".", 1)[0]
    return name


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _year_in_range(value: int) -> bool:
    return MIN_YEAR <= value <= MAX_YEAR


def extract_show_name(prefix: str) -> str:
    """Clean the text preceding an episode token into a show name."""

    name = _GROUP_TAG.sub("", prefix).strip()
    name = name.replace(".", " ")
    name = _RELEASE_INFO.sub("", name).strip()
    name = name.rstrip("-_ ")
    return _collapse(name)


def parse_episode(filename: str) -> Optional[EpisodeIdentity]:
    """Return the show/season/episode triple encoded in *filename*.

    Patterns are tried in priority order and the first one that yields a
    usable show name wins:

    1. ``S01E05`` anywhere in the stem.
    2. ``1E05``/``01E05`` bounded to season 1-20 and episode 1-999.
    3. A trailing bare episode number after a separator (season 1).
    """

    stem = _stem(filename)

    match = _SEASON_EPISODE.search(stem)
    if match:
        show = extract_show_name(stem[: match.start()])
        if show:
            return EpisodeIdentity(show, int(match.group(1)), int(match.group(2)))

    match = _LOOSE_SEASON_EPISODE.search(stem)
    if match:
        season = int(match.group(1))
        episode = int(match.group(2))
        if 1 <= season <= 20 and 1 <= episode <= 999:
            show = extract_show_name(stem[: match.start()])
            if show:
                return EpisodeIdentity(show, season, episode)

    match = _TRAILING_EPISODE.search(stem)
    if match:
        episode = int(match.group(1))
        if 1 <= episode <= 999:
            show = extract_show_name(stem[: match.start()])
            if show:
                return EpisodeIdentity(show, 1, episode)

    return None


def parse_movie(filename: str) -> MovieIdentity:
    """Return ``Title (YYYY)`` identity; falls back to the whole stem."""

    stem = _stem(filename)
    match = _MOVIE_YEAR.match(stem)
    if match:
        year = int(match.group(2))
        if _year_in_range(year):
            title = _collapse(match.group(1).replace(".", " ").rstrip("- ."))
            if title:
                return MovieIdentity(title, year)
    return MovieIdentity(_collapse(stem.replace(".", " ")) or stem, None)


def clean_folder_name(name: str) -> str:
    """Strip release noise from a series folder name."""

    cleaned = name.replace(".", " ")
    cleaned = _BRACKETED.sub(" ", cleaned)
    cleaned = _PAREN_RELEASE.sub(" ", cleaned)
    cleaned = _SEASON_RANGE.sub("", cleaned)
    cleaned = _FOLDER_RELEASE.sub("", cleaned)
    cleaned = _GROUP_SUFFIX.sub("", cleaned)
    cleaned = cleaned.rstrip("-_ ")
    return _collapse(cleaned)


def extract_year(name: str) -> Tuple[str, Optional[int]]:
    """Split a trailing ``(YYYY)`` from a cleaned folder name."""

    cleaned = clean_folder_name(name)
    paren = cleaned.rfind("(")
    if paren != -1:
        candidate = cleaned[paren:].strip("() ")
        if len(candidate) == 4 and candidate.isdigit():
            year = int(candidate)
            if _year_in_range(year):
                title = cleaned[:paren].strip()
                if title:
                    return title, year
    return cleaned, None


def normalize_series_name(name: str) -> str:
    """Lowercase key used to match series folders that differ only in punctuation."""

    title, _year = extract_year(name)
    lowered = _NON_NAME_CHARS.sub(" ", title.lower())
    return _collapse(lowered)


def is_video_file(path: str | PurePath, extensions: Iterable[str]) -> bool:
    suffix = PurePath(path).suffix.lower().lstrip(".")
    if not suffix:
        return False
    return suffix in {ext.lower().lstrip(".") for ext in extensions}


__all__ = [
    "MAX_YEAR",
    "MIN_YEAR",
    "clean_folder_name",
    "extract_show_name",
    "extract_year",
    "is_video_file",
    "normalize_series_name",
    "parse_episode",
    "parse_movie",
]
