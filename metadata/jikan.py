"""Jikan (MyAnimeList) REST gateway."""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Tuple

import requests
from rapidfuzz import fuzz

from .http import build_session, request_json
from .matching import clean_title
from .types import PROVIDER_JIKAN, UnifiedMetadata

LOGGER = logging.getLogger("medialib.metadata.jikan")

JIKAN_API_BASE = "https://api.jikan.moe/v4"


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _score_candidate(anime: Mapping[str, Any], query: str, year: Optional[int]) -> int:
    query_lower = query.lower()
    query_clean = clean_title(query_lower)
    score = 0

    title_lower = str(anime.get("title") or "").lower()
    title_clean = clean_title(title_lower)
    if title_clean and title_clean == query_clean:
        score += 100
    elif title_lower and (query_lower in title_lower or title_lower in query_lower):
        score += 50
    elif title_clean and (query_clean in title_clean or title_clean in query_clean):
        score += 30

    english = anime.get("title_english")
    if isinstance(english, str) and english:
        english_lower = english.lower()
        if clean_title(english_lower) == query_clean:
            score += 100
        elif query_lower in english_lower:
            score += 40

    synonyms = anime.get("title_synonyms")
    if isinstance(synonyms, list):
        if any(isinstance(syn, str) and clean_title(syn) == query_clean for syn in synonyms):
            score += 80

    if year is not None:
        aired_from = _mapping(anime.get("aired")).get("from")
        if anime.get("year") == year:
            score += 50
        elif isinstance(aired_from, str) and aired_from.startswith(str(year)):
            score += 40

    if anime.get("type") == "TV":
        score += 10
    mal_score = anime.get("score")
    if isinstance(mal_score, (int, float)):
        score += int(mal_score * 2)
    return score


def find_best_match(
    results: List[Mapping[str, Any]],
    query: str,
    year: Optional[int] = None,
) -> Optional[Mapping[str, Any]]:
    """Return the highest scoring result; equal scores prefer the closer title."""

    best: Optional[Tuple[int, float]] = None
    chosen: Optional[Mapping[str, Any]] = None
    for anime in results:
        score = _score_candidate(anime, query, year)
        if score <= 0:
            continue
        closeness = fuzz.token_sort_ratio(query.lower(), str(anime.get("title") or "").lower())
        key = (score, closeness)
        if best is None or key > best:
            best = key
            chosen = anime
    return chosen


def anime_to_metadata(anime: Mapping[str, Any]) -> UnifiedMetadata:
    images = _mapping(anime.get("images"))
    jpg = _mapping(images.get("jpg"))
    webp = _mapping(images.get("webp"))
    poster = (
        jpg.get("large_image_url")
        or jpg.get("image_url")
        or webp.get("large_image_url")
        or webp.get("image_url")
    )
    aired_from = _mapping(anime.get("aired")).get("from")
    premiere = aired_from.split("T", 1)[0] if isinstance(aired_from, str) and aired_from else None
    year = anime.get("year") if isinstance(anime.get("year"), int) else None
    if year is None and premiere:
        head = premiere.split("-", 1)[0]
        year = int(head) if head.isdigit() else None
    genres = [
        str(item["name"])
        for key in ("genres", "themes")
        for item in (anime.get(key) or [])
        if isinstance(item, Mapping) and item.get("name")
    ]
    studios = [item for item in (anime.get("studios") or []) if isinstance(item, Mapping) and item.get("name")]
    score = anime.get("score")
    return UnifiedMetadata(
        mal_id=str(anime["mal_id"]) if anime.get("mal_id") is not None else None,
        name=anime.get("title") or anime.get("title_english"),
        name_original=anime.get("title_japanese"),
        overview=anime.get("synopsis") or None,
        year=year,
        premiere_date=premiere,
        community_rating=float(score) if isinstance(score, (int, float)) else None,
        poster_url=poster,
        episode_count=anime.get("episodes") if isinstance(anime.get("episodes"), int) else None,
        genres=genres,
        studio=str(studios[0]["name"]) if studios else None,
        provider=PROVIDER_JIKAN,
    )


class JikanGateway:
    name = PROVIDER_JIKAN

    def __init__(self, *, timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self.session = session or build_session()

    def search(self, title: str, year: Optional[int] = None) -> List[Mapping[str, Any]]:
        params = {"q": title, "sfw": "true", "limit": 10}
        if year:
            params["start_date"] = f"{year}-01-01"
            params["end_date"] = f"{year}-12-31"
        payload = request_json(
            self.session,
            "GET",
            f"{JIKAN_API_BASE}/anime",
            timeout=self.timeout,
            provider=self.name,
            params=params,
        )
        data = _mapping(payload).get("data")
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, Mapping)]

    def get_by_id(self, mal_id: str | int) -> Optional[UnifiedMetadata]:
        try:
            anime_id = int(mal_id)
        except (TypeError, ValueError):
            return None
        payload = request_json(
            self.session,
            "GET",
            f"{JIKAN_API_BASE}/anime/{anime_id}",
            timeout=self.timeout,
            provider=self.name,
        )
        data = _mapping(payload).get("data")
        if not isinstance(data, Mapping):
            return None
        return anime_to_metadata(data)


__all__ = ["JIKAN_API_BASE", "JikanGateway", "anime_to_metadata", "find_best_match"]
