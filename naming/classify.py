"""Best-effort anime / series / movie classification of raw names."""
from __future__ import annotations

from typing import Literal

Classification = Literal["anime", "series", "movie"]

ANIME = "anime"
SERIES = "series"
MOVIE = "movie"

_ANIME_MARKERS = (
    # honorifics
    "-san", "-kun", "-chan", "-sama", "-sensei", "-senpai", "-dono",
    # genre vocabulary
    "shounen", "shonen", "shoujo", "shojo", "seinen", "josei", "isekai", "mahou",
    "mecha", "ecchi", "harem", "chibi", " no ", "-tachi", "monogatari", "densetsu",
    "bouken",
    # release tags common in fansub naming
    "[dual-audio]", "dual-audio", "[multi-audio]", "multi-audio", "x265", "10-bit",
    "10bit", "hevc", "flac", "[bd]", "[bdrip]", "[subsplease]", "[erai-raws]",
    "[horriblesubs]", "[commie]", "[gg]", "[reaktor]", "[judas]", "[doki]", "nyaa",
    " 2nd season", " 3rd season", " ova", " ona", "[ova]", "[ona]",
    # light-novel title phrasing
    "reincarnated", "otherworld", "another world", "villainess", "demon lord",
    "demon king", "hero", "saint", "summoned", "guild", "adventurer", "dungeon",
    "kingdom", "noble", "prince", "princess", "fiancé", "fiance", "engagement",
    "magic", "sorcerer", "witch", "slime", "skill", "level", "cheat", "overpowered",
    "strongest", "weakest", "tossed aside", "kicked out", "banished", "exiled",
    "sold to", "reborn as", "became a", "turned into", "i was", "my life as",
)

_JAPANESE_RANGES = (
    (0x3040, 0x309F),  # hiragana
    (0x30A0, 0x30FF),  # katakana
    (0x4E00, 0x9FFF),  # CJK unified ideographs
)


def _has_japanese_script(name: str) -> bool:
    for char in name:
        code = ord(char)
        for low, high in _JAPANESE_RANGES:
            if low <= code <= high:
                return True
    return False


def is_likely_anime(name: str) -> bool:
    if name.startswith("["):
        return True
    lowered = name.lower()
    if any(marker in lowered for marker in _ANIME_MARKERS):
        return True
    return _has_japanese_script(name)


def classify(raw_name: str, *, movie_library: bool = False) -> Classification:
    """Tag a raw file or folder name before metadata resolution.

    Movie libraries always yield ``movie``; the anime heuristic only decides
    between the two episodic chains.
    """

    if movie_library:
        return MOVIE
    return ANIME if is_likely_anime(raw_name) else SERIES


__all__ = ["ANIME", "MOVIE", "SERIES", "Classification", "classify", "is_likely_anime"]
