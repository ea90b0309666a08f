"""TMDb gateway built on ``tmdbsimple``."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
import tmdbsimple as tmdb

from .matching import any_title_matches
from .types import PROVIDER_TMDB, CastMember, EpisodeMetadata, UnifiedMetadata

LOGGER = logging.getLogger("medialib.metadata.tmdb")

IMAGE_BASE = "https://image.tmdb.org/t/p"
POSTER_SIZE = "w500"
BACKDROP_SIZE = "w1280"
STILL_SIZE = "w300"
PROFILE_SIZE = "w185"
CAST_LIMIT = 20
_CREW_JOBS = {"Director", "Writer", "Screenplay"}


def image_url(path: Any, size: str) -> Optional[str]:
    if not isinstance(path, str) or not path:
        return None
    return f"{IMAGE_BASE}/{size}{path}"


def _year_of(date: Any) -> Optional[int]:
    if isinstance(date, str) and len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def extract_cast(credits: Any, limit: int = CAST_LIMIT) -> List[CastMember]:
    """Top billed actors, then directors and writers while room remains."""

    if not isinstance(credits, Mapping):
        return []
    cast: List[CastMember] = []
    for member in (credits.get("cast") or [])[:limit]:
        if not isinstance(member, Mapping) or member.get("id") is None or not member.get("name"):
            continue
        cast.append(
            CastMember(
                person_id=f"tmdb-person-{member['id']}",
                person_name=str(member["name"]),
                person_image_url=image_url(member.get("profile_path"), PROFILE_SIZE),
                character_name=member.get("character") or None,
                role="Actor",
            )
        )
    for member in credits.get("crew") or []:
        if len(cast) >= limit:
            break
        if not isinstance(member, Mapping) or member.get("job") not in _CREW_JOBS:
            continue
        if member.get("id") is None or not member.get("name"):
            continue
        cast.append(
            CastMember(
                person_id=f"tmdb-person-{member['id']}",
                person_name=str(member["name"]),
                person_image_url=image_url(member.get("profile_path"), PROFILE_SIZE),
                role=str(member["job"]),
            )
        )
    return cast


def _genres(details: Mapping[str, Any]) -> List[str]:
    return [str(item["name"]) for item in details.get("genres") or [] if isinstance(item, Mapping) and item.get("name")]


def _first_name(items: Any) -> Optional[str]:
    if isinstance(items, list):
        for item in items:
            if isinstance(item, Mapping) and item.get("name"):
                return str(item["name"])
    return None


def series_to_metadata(details: Mapping[str, Any]) -> UnifiedMetadata:
    external = details.get("external_ids") if isinstance(details.get("external_ids"), Mapping) else {}
    vote = details.get("vote_average")
    premiere = details.get("first_air_date") or None
    return UnifiedMetadata(
        tmdb_id=str(details["id"]) if details.get("id") is not None else None,
        imdb_id=external.get("imdb_id") or None,
        name=details.get("name") or None,
        name_original=details.get("original_name") or None,
        overview=details.get("overview") or None,
        year=_year_of(premiere),
        premiere_date=premiere,
        community_rating=float(vote) if isinstance(vote, (int, float)) else None,
        poster_url=image_url(details.get("poster_path"), POSTER_SIZE),
        backdrop_url=image_url(details.get("backdrop_path"), BACKDROP_SIZE),
        episode_count=details.get("number_of_episodes") if isinstance(details.get("number_of_episodes"), int) else None,
        genres=_genres(details),
        studio=_first_name(details.get("networks")) or _first_name(details.get("production_companies")),
        cast=extract_cast(details.get("credits")),
        provider=PROVIDER_TMDB,
    )


def movie_to_metadata(details: Mapping[str, Any]) -> UnifiedMetadata:
    vote = details.get("vote_average")
    premiere = details.get("release_date") or None
    runtime = details.get("runtime")
    return UnifiedMetadata(
        tmdb_id=str(details["id"]) if details.get("id") is not None else None,
        imdb_id=details.get("imdb_id") or None,
        name=details.get("title") or None,
        name_original=details.get("original_title") or None,
        overview=details.get("overview") or None,
        year=_year_of(premiere),
        premiere_date=premiere,
        community_rating=float(vote) if isinstance(vote, (int, float)) else None,
        poster_url=image_url(details.get("poster_path"), POSTER_SIZE),
        backdrop_url=image_url(details.get("backdrop_path"), BACKDROP_SIZE),
        runtime_minutes=runtime if isinstance(runtime, int) and runtime > 0 else None,
        genres=_genres(details),
        studio=_first_name(details.get("production_companies")),
        cast=extract_cast(details.get("credits")),
        provider=PROVIDER_TMDB,
    )


def select_series(results: List[Mapping[str, Any]], title: str) -> Optional[Mapping[str, Any]]:
    for result in results:
        if any_title_matches(title, (result.get("name"), result.get("original_name"))):
            return result
    LOGGER.debug("TMDb search returned results for %r but none matched well enough", title)
    return None


def select_movie(results: List[Mapping[str, Any]], title: str, year: Optional[int]) -> Optional[Mapping[str, Any]]:
    """First title match, preferring one released in *year* when given."""

    matching = [
        result
        for result in results
        if any_title_matches(title, (result.get("title"), result.get("original_title")))
    ]
    if not matching:
        LOGGER.debug("TMDb movie search returned results for %r but none matched well enough", title)
        return None
    if year is not None:
        for result in matching:
            if _year_of(result.get("release_date")) == year:
                return result
    return matching[0]


class TMDbGateway:
    name = PROVIDER_TMDB

    def __init__(
        self,
        api_key: str,
        *,
        language: str = "en-US",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.language = language
        tmdb.API_KEY = api_key
        tmdb.REQUESTS_TIMEOUT = timeout
        if session is not None:
            tmdb.REQUESTS_SESSION = session

    def _call(self, description: str, func, **kwargs: Any) -> Optional[Dict[str, Any]]:
        kwargs.setdefault("language", self.language)
        try:
            payload = func(**kwargs)
        except requests.RequestException as exc:
            LOGGER.debug("TMDb %s failed: %s", description, exc)
            return None
        except ValueError:
            LOGGER.debug("TMDb returned invalid JSON for %s", description)
            return None
        return payload if isinstance(payload, dict) else None

    def _results(self, payload: Optional[Dict[str, Any]]) -> List[Mapping[str, Any]]:
        results = payload.get("results") if payload else None
        if not isinstance(results, list):
            return []
        return [item for item in results if isinstance(item, Mapping)]

    def search_series(self, title: str, year: Optional[int] = None) -> List[Mapping[str, Any]]:
        params: Dict[str, Any] = {"query": title, "include_adult": "false"}
        if year:
            params["first_air_date_year"] = year
        return self._results(self._call("tv search", tmdb.Search().tv, **params))

    def search_movie(self, title: str, year: Optional[int] = None) -> List[Mapping[str, Any]]:
        params: Dict[str, Any] = {"query": title, "include_adult": "false"}
        if year:
            params["year"] = year
        return self._results(self._call("movie search", tmdb.Search().movie, **params))

    def get_series(self, tv_id: str | int) -> Optional[UnifiedMetadata]:
        if not str(tv_id).isdigit():
            return None
        details = self._call(f"tv/{tv_id}", tmdb.TV(int(tv_id)).info, append_to_response="external_ids,credits")
        return series_to_metadata(details) if details else None

    def get_movie(self, movie_id: str | int) -> Optional[UnifiedMetadata]:
        if not str(movie_id).isdigit():
            return None
        details = self._call(f"movie/{movie_id}", tmdb.Movies(int(movie_id)).info, append_to_response="credits")
        return movie_to_metadata(details) if details else None

    def get_episode(self, tv_id: str | int, season: int, episode: int) -> Optional[EpisodeMetadata]:
        if not str(tv_id).isdigit():
            return None
        payload = self._call(f"tv/{tv_id}/season/{season}", tmdb.TV_Seasons(int(tv_id), season).info)
        episodes = payload.get("episodes") if payload else None
        if not isinstance(episodes, list):
            return None
        for item in episodes:
            if not isinstance(item, Mapping) or item.get("episode_number") != episode:
                continue
            vote = item.get("vote_average")
            runtime = item.get("runtime")
            return EpisodeMetadata(
                name=item.get("name") or None,
                overview=item.get("overview") or None,
                premiere_date=item.get("air_date") or None,
                community_rating=float(vote) if isinstance(vote, (int, float)) else None,
                runtime_minutes=runtime if isinstance(runtime, int) else None,
                still_url=image_url(item.get("still_path"), STILL_SIZE),
            )
        return None


__all__ = [
    "IMAGE_BASE",
    "TMDbGateway",
    "extract_cast",
    "image_url",
    "movie_to_metadata",
    "select_movie",
    "select_series",
    "series_to_metadata",
]
