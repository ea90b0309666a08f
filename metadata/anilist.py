"""AniList GraphQL gateway."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

import requests

from .http import build_session, request_json
from .matching import title_matches
from .types import PROVIDER_ANILIST, CastMember, UnifiedMetadata

LOGGER = logging.getLogger("medialib.metadata.anilist")

ANILIST_URL = "https://graphql.anilist.co"

_MEDIA_FIELDS = """
    id
    idMal
    title { romaji english native }
    description(asHtml: false)
    startDate { year month day }
    endDate { year month day }
    coverImage { extraLarge large medium }
    bannerImage
    averageScore
    episodes
    duration
    genres
    studios(isMain: true) { nodes { name isAnimationStudio } }
    format
    status
    seasonYear
"""

SEARCH_QUERY = (
    "query ($search: String, $seasonYear: Int) {\n"
    "  Page(perPage: 10) {\n"
    "    media(search: $search, seasonYear: $seasonYear, type: ANIME, sort: SEARCH_MATCH) {"
    + _MEDIA_FIELDS
    + "    }\n  }\n}"
)

DETAILS_QUERY = (
    "query ($id: Int) {\n"
    "  Media(id: $id, type: ANIME) {"
    + _MEDIA_FIELDS
    + """
    characters(sort: ROLE, perPage: 25) {
      edges {
        node { id name { full native } image { large medium } }
        role
        voiceActors(language: JAPANESE) { id name { full native } image { large medium } language }
      }
    }
  }
}"""
)

_HTML_TAG = re.compile(r"<[^>]+>")


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def media_year(media: Mapping[str, Any]) -> Optional[int]:
    year = media.get("seasonYear")
    if isinstance(year, int):
        return year
    start = _mapping(media.get("startDate")).get("year")
    return start if isinstance(start, int) else None


def _premiere_date(media: Mapping[str, Any]) -> Optional[str]:
    start = _mapping(media.get("startDate"))
    year = start.get("year")
    if not isinstance(year, int):
        return None
    month = start.get("month") if isinstance(start.get("month"), int) else 1
    day = start.get("day") if isinstance(start.get("day"), int) else 1
    return "%04d-%02d-%02d" % (year, month, day)


def extract_cast(media: Mapping[str, Any]) -> List[CastMember]:
    """Japanese voice actors attached to the media characters."""

    cast: List[CastMember] = []
    edges = _mapping(media.get("characters")).get("edges")
    if not isinstance(edges, list):
        return cast
    for edge in edges:
        if not isinstance(edge, Mapping):
            continue
        character = _mapping(_mapping(edge.get("node")).get("name")).get("full")
        actors = edge.get("voiceActors")
        if not isinstance(actors, list):
            continue
        for actor in actors:
            if not isinstance(actor, Mapping) or actor.get("id") is None:
                continue
            name = _mapping(actor.get("name")).get("full")
            if not name:
                continue
            image = _mapping(actor.get("image"))
            cast.append(
                CastMember(
                    person_id=f"anilist-staff-{actor['id']}",
                    person_name=str(name),
                    person_image_url=image.get("large") or image.get("medium"),
                    character_name=str(character) if character else None,
                    role="Voice Actor",
                )
            )
    return cast


def media_to_metadata(media: Mapping[str, Any]) -> UnifiedMetadata:
    title = _mapping(media.get("title"))
    cover = _mapping(media.get("coverImage"))
    studios = _mapping(media.get("studios")).get("nodes")
    studio: Optional[str] = None
    if isinstance(studios, list):
        nodes = [node for node in studios if isinstance(node, Mapping) and node.get("name")]
        animation = [node for node in nodes if node.get("isAnimationStudio")]
        chosen = animation[0] if animation else (nodes[0] if nodes else None)
        studio = str(chosen["name"]) if chosen else None
    description = media.get("description")
    overview = _HTML_TAG.sub("", description).strip() if isinstance(description, str) else None
    score = media.get("averageScore")
    genres = media.get("genres")
    return UnifiedMetadata(
        anilist_id=str(media["id"]) if media.get("id") is not None else None,
        mal_id=str(media["idMal"]) if media.get("idMal") is not None else None,
        name=title.get("english") or title.get("romaji"),
        name_original=title.get("native"),
        overview=overview or None,
        year=media_year(media),
        premiere_date=_premiere_date(media),
        community_rating=float(score) / 10.0 if isinstance(score, (int, float)) else None,
        poster_url=cover.get("extraLarge") or cover.get("large"),
        backdrop_url=media.get("bannerImage") or None,
        episode_count=media.get("episodes") if isinstance(media.get("episodes"), int) else None,
        runtime_minutes=media.get("duration") if isinstance(media.get("duration"), int) else None,
        genres=[str(genre) for genre in genres] if isinstance(genres, list) else [],
        studio=studio,
        cast=extract_cast(media),
        provider=PROVIDER_ANILIST,
    )


def select_match(
    results: List[Mapping[str, Any]],
    title: str,
    year: Optional[int] = None,
) -> Optional[Mapping[str, Any]]:
    """Pick the first result whose english, romaji or native title matches.

    When nothing matches but a year was requested and the first result aired
    that year, the search ranking is trusted and the first result is used.
    """

    if not results:
        return None
    for media in results:
        names = _mapping(media.get("title"))
        if any(title_matches(title, names.get(key)) for key in ("english", "romaji", "native")):
            return media
    if year is not None and media_year(results[0]) == year:
        LOGGER.info("AniList: no title match for %r but year %s matches, trusting first result", title, year)
        return results[0]
    LOGGER.debug("AniList search returned results for %r but none matched well enough", title)
    return None


class AniListGateway:
    """Search and id lookups against the AniList GraphQL API."""

    name = PROVIDER_ANILIST

    def __init__(self, *, timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.session = session or build_session()

    def _query(self, query: str, variables: Dict[str, Any]) -> Mapping[str, Any]:
        payload = request_json(
            self.session,
            "POST",
            ANILIST_URL,
            timeout=self.timeout,
            provider=self.name,
            json_body={"query": query, "variables": variables},
        )
        return _mapping(_mapping(payload).get("data"))

    def search(self, title: str, year: Optional[int] = None) -> List[Mapping[str, Any]]:
        variables: Dict[str, Any] = {"search": title}
        if year:
            variables["seasonYear"] = year
        media = _mapping(self._query(SEARCH_QUERY, variables).get("Page")).get("media")
        if not isinstance(media, list):
            return []
        return [item for item in media if isinstance(item, Mapping)]

    def get_by_id(self, anilist_id: str | int) -> Optional[UnifiedMetadata]:
        try:
            media_id = int(anilist_id)
        except (TypeError, ValueError):
            return None
        media = self._query(DETAILS_QUERY, {"id": media_id}).get("Media")
        if not isinstance(media, Mapping):
            return None
        return media_to_metadata(media)


__all__ = ["ANILIST_URL", "AniListGateway", "extract_cast", "media_to_metadata", "media_year", "select_match"]
