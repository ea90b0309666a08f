"""Unified metadata records shared by the provider gateways and the scanner."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

PROVIDER_NONE = "none"
PROVIDER_ANILIST = "anilist"
PROVIDER_ANIDB = "anidb"
PROVIDER_JIKAN = "jikan"
PROVIDER_TMDB = "tmdb"

# Order used when looking up an existing series by provider id.
PROVIDER_ID_PRIORITY = ("anilist", "tmdb", "mal", "anidb")
ID_FIELDS = ("anilist_id", "anidb_id", "mal_id", "kitsu_id", "tmdb_id", "imdb_id")


@dataclass(slots=True)
class CastMember:
    person_id: str
    person_name: str
    person_image_url: Optional[str] = None
    character_name: Optional[str] = None
    role: str = "Actor"


@dataclass(slots=True)
class UnifiedMetadata:
    anilist_id: Optional[str] = None
    anidb_id: Optional[str] = None
    mal_id: Optional[str] = None
    kitsu_id: Optional[str] = None
    tmdb_id: Optional[str] = None
    imdb_id: Optional[str] = None
    name: Optional[str] = None
    name_original: Optional[str] = None
    overview: Optional[str] = None
    year: Optional[int] = None
    premiere_date: Optional[str] = None
    community_rating: Optional[float] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    episode_count: Optional[int] = None
    runtime_minutes: Optional[int] = None
    genres: List[str] = field(default_factory=list)
    studio: Optional[str] = None
    cast: List[CastMember] = field(default_factory=list)
    provider: str = PROVIDER_NONE

    def provider_ids(self) -> Dict[str, str]:
        """Return the known ids keyed by short provider name (``anilist``, ``mal``...)."""

        ids: Dict[str, str] = {}
        for attr in ID_FIELDS:
            value = getattr(self, attr)
            if value:
                ids[attr[: -len("_id")]] = value
        return ids

    def fill_missing_ids(self, ids: Dict[str, Optional[str]]) -> List[str]:
        """Copy ids from *ids* into empty slots; returns the attributes filled."""

        filled: List[str] = []
        for provider, value in ids.items():
            attr = f"{provider}_id"
            if attr not in ID_FIELDS or not value:
                continue
            if getattr(self, attr) is None:
                setattr(self, attr, str(value))
                filled.append(attr)
        return filled

    def richness(self) -> int:
        """Count descriptive fields that are populated."""

        values = (
            self.overview,
            self.poster_url,
            self.backdrop_url,
            self.premiere_date,
            self.community_rating,
            self.studio,
        )
        return sum(1 for value in values if value not in (None, "")) + (1 if self.genres else 0)


@dataclass(slots=True)
class EpisodeMetadata:
    name: Optional[str] = None
    overview: Optional[str] = None
    premiere_date: Optional[str] = None
    community_rating: Optional[float] = None
    runtime_minutes: Optional[int] = None
    still_url: Optional[str] = None


__all__ = [
    "CastMember",
    "EpisodeMetadata",
    "ID_FIELDS",
    "PROVIDER_ANIDB",
    "PROVIDER_ANILIST",
    "PROVIDER_ID_PRIORITY",
    "PROVIDER_JIKAN",
    "PROVIDER_NONE",
    "PROVIDER_TMDB",
    "UnifiedMetadata",
]
