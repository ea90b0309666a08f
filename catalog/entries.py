"""Offline anime catalog records."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

PROVIDER_URL_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("anilist", "anilist.co/anime/"),
    ("anidb", "anidb.net/anime/"),
    ("mal", "myanimelist.net/anime/"),
    ("kitsu", "kitsu.app/anime/"),
)

_LEADING_DIGITS = re.compile(r"^(\d+)")


def extract_provider_id(url: str, pattern: str) -> Optional[str]:
    """Return the numeric id following *pattern* inside *url*."""

    position = url.find(pattern)
    if position == -1:
        return None
    match = _LEADING_DIGITS.match(url[position + len(pattern) :])
    return match.group(1) if match else None


@dataclass(slots=True, frozen=True)
class CatalogEntry:
    title: str
    synonyms: Tuple[str, ...] = ()
    sources: Tuple[str, ...] = ()
    type: Optional[str] = None
    episodes: Optional[int] = None
    status: Optional[str] = None
    season: Optional[str] = None
    year: Optional[int] = None
    picture: Optional[str] = None
    thumbnail: Optional[str] = None
    tags: Tuple[str, ...] = ()
    provider_ids: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def provider_id(self, provider: str) -> Optional[str]:
        return self.provider_ids.get(provider)

    @property
    def anilist_id(self) -> Optional[str]:
        return self.provider_ids.get("anilist")

    @property
    def anidb_id(self) -> Optional[str]:
        return self.provider_ids.get("anidb")

    @property
    def mal_id(self) -> Optional[str]:
        return self.provider_ids.get("mal")

    @property
    def kitsu_id(self) -> Optional[str]:
        return self.provider_ids.get("kitsu")


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _string_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if isinstance(item, str) and item)


def entry_from_mapping(payload: Mapping[str, Any]) -> Optional[CatalogEntry]:
    """Build an entry from one ``data`` record of the offline database JSON."""

    title = payload.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    sources = _string_tuple(payload.get("sources"))
    provider_ids: Dict[str, str] = {}
    for source in sources:
        for provider, pattern in PROVIDER_URL_PATTERNS:
            if provider in provider_ids:
                continue
            found = extract_provider_id(source, pattern)
            if found:
                provider_ids[provider] = found
    season_section = payload.get("animeSeason")
    season: Optional[str] = None
    year: Optional[int] = None
    if isinstance(season_section, Mapping):
        raw_season = season_section.get("season")
        season = str(raw_season) if raw_season else None
        year = _optional_int(season_section.get("year"))
    return CatalogEntry(
        title=title,
        synonyms=_string_tuple(payload.get("synonyms")),
        sources=sources,
        type=str(payload["type"]) if payload.get("type") else None,
        episodes=_optional_int(payload.get("episodes")),
        status=str(payload["status"]) if payload.get("status") else None,
        season=season,
        year=year,
        picture=str(payload["picture"]) if payload.get("picture") else None,
        thumbnail=str(payload["thumbnail"]) if payload.get("thumbnail") else None,
        tags=_string_tuple(payload.get("tags")),
        provider_ids=provider_ids,
    )


def parse_catalog_payload(payload: Mapping[str, Any]) -> List[CatalogEntry]:
    data = payload.get("data") if isinstance(payload, Mapping) else None
    if not isinstance(data, list):
        return []
    entries: List[CatalogEntry] = []
    for record in data:
        if not isinstance(record, Mapping):
            continue
        entry = entry_from_mapping(record)
        if entry is not None:
            entries.append(entry)
    return entries


__all__ = [
    "CatalogEntry",
    "PROVIDER_URL_PATTERNS",
    "entry_from_mapping",
    "extract_provider_id",
    "parse_catalog_payload",
]
