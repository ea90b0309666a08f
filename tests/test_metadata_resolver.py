"""Tests for the provider chains in MetadataResolver."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from catalog.download import CatalogSettings
from catalog.engine import AnimeCatalog
from catalog.entries import CatalogEntry
from metadata.ratelimit import RateLimiter
from metadata.resolver import MetadataResolver
from metadata.types import EpisodeMetadata, UnifiedMetadata
from naming.classify import ANIME, MOVIE, SERIES

TITAN = CatalogEntry(
    title="Shingeki no Kyojin",
    synonyms=("Attack on Titan",),
    year=2013,
    provider_ids={"anilist": "16498", "mal": "16498", "anidb": "9541"},
)


class FakeAniList:
    def __init__(self, *, by_id: Optional[UnifiedMetadata] = None, results: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None) -> None:
        self.by_id = by_id
        self.results = results or []
        self.error = error
        self.id_calls: List[str] = []
        self.search_calls: List[tuple] = []

    def get_by_id(self, anilist_id):
        self.id_calls.append(str(anilist_id))
        return self.by_id

    def search(self, title, year=None):
        self.search_calls.append((title, year))
        if self.error is not None:
            raise self.error
        return self.results


class FakeJikan:
    def __init__(self, results: Optional[List[Dict[str, Any]]] = None) -> None:
        self.results = results or []
        self.search_calls: List[tuple] = []

    def get_by_id(self, mal_id):
        return None

    def search(self, title, year=None):
        self.search_calls.append((title, year))
        return self.results if year is None else []


class FakeTMDb:
    def __init__(self) -> None:
        self.episode_calls: List[tuple] = []

    def search_series(self, title, year=None):
        return [{"id": 1396, "name": "Breaking Bad"}]

    def get_series(self, tv_id):
        return UnifiedMetadata(tmdb_id=str(tv_id), name="Breaking Bad", provider="tmdb")

    def search_movie(self, title, year=None):
        return [{"id": 603, "title": "The Matrix", "release_date": "1999-03-31"}]

    def get_movie(self, movie_id):
        return UnifiedMetadata(tmdb_id=str(movie_id), name="The Matrix", year=1999, provider="tmdb")

    def get_episode(self, tv_id, season, episode):
        self.episode_calls.append((tv_id, season, episode))
        return EpisodeMetadata(name=f"Episode {episode}")


class FakeByIdGateway:
    """Answers catalog by-id lookups and records the call order."""

    def __init__(self, provider: str, calls: List[tuple], *, result: Optional[UnifiedMetadata] = None, error: Optional[Exception] = None) -> None:
        self.provider = provider
        self.calls = calls
        self.result = result
        self.error = error

    def get_by_id(self, provider_id):
        self.calls.append((self.provider, str(provider_id)))
        if self.error is not None:
            raise self.error
        return self.result

    def search(self, title, year=None):
        return []


def _limiters() -> Dict[str, RateLimiter]:
    return {provider: RateLimiter(0) for provider in ("anilist", "jikan", "anidb", "tmdb")}


def _catalog() -> AnimeCatalog:
    return AnimeCatalog.from_entries([TITAN], CatalogSettings(enabled=True, max_year_diff=5))


def test_catalog_hit_fetches_by_id_and_fills_sibling_ids() -> None:
    anilist = FakeAniList(by_id=UnifiedMetadata(anilist_id="16498", name="Attack on Titan", provider="anilist"))
    resolver = MetadataResolver(catalog=_catalog(), anilist=anilist, limiters=_limiters())

    metadata = asyncio.run(resolver.resolve("Attack on Titan", 2013, ANIME))

    assert metadata is not None
    assert anilist.id_calls == ["16498"]
    assert anilist.search_calls == []
    assert metadata.mal_id == "16498"
    assert metadata.anidb_id == "9541"


def test_catalog_ids_fall_through_anidb_then_jikan() -> None:
    calls: List[tuple] = []
    resolver = MetadataResolver(
        catalog=_catalog(),
        anilist=FakeByIdGateway("anilist", calls),
        anidb=FakeByIdGateway("anidb", calls),
        jikan=FakeByIdGateway("jikan", calls, result=UnifiedMetadata(mal_id="16498", name="Attack on Titan", provider="jikan")),
        limiters=_limiters(),
    )

    metadata = asyncio.run(resolver.resolve("Attack on Titan", 2013, ANIME))

    assert calls == [("anilist", "16498"), ("anidb", "9541"), ("jikan", "16498")]
    assert metadata is not None
    assert metadata.provider == "jikan"
    assert metadata.anilist_id == "16498"
    assert metadata.anidb_id == "9541"


def test_catalog_lookup_error_tries_next_provider() -> None:
    calls: List[tuple] = []
    resolver = MetadataResolver(
        catalog=_catalog(),
        anilist=FakeByIdGateway("anilist", calls, error=AttributeError("unexpected payload")),
        anidb=FakeByIdGateway("anidb", calls, result=UnifiedMetadata(anidb_id="9541", name="Shingeki no Kyojin", provider="anidb")),
        jikan=FakeByIdGateway("jikan", calls),
        limiters=_limiters(),
    )

    metadata = asyncio.run(resolver.resolve("Attack on Titan", 2013, ANIME))

    assert calls == [("anilist", "16498"), ("anidb", "9541")]
    assert metadata is not None
    assert metadata.provider == "anidb"
    assert metadata.mal_id == "16498"


def test_catalog_year_mismatch_is_rejected() -> None:
    anilist = FakeAniList(by_id=UnifiedMetadata(anilist_id="16498", name="Attack on Titan"))
    resolver = MetadataResolver(catalog=_catalog(), anilist=anilist, limiters=_limiters())

    metadata = asyncio.run(resolver.resolve("Attack on Titan", 2025, ANIME))

    assert metadata is None
    assert anilist.id_calls == []
    assert anilist.search_calls == [("Attack on Titan", 2025)]


def test_search_result_is_backfilled_from_catalog() -> None:
    media = {
        "id": 16498,
        "title": {"english": "Attack on Titan", "romaji": "Shingeki no Kyojin"},
        "seasonYear": 2013,
    }
    anilist = FakeAniList(by_id=None, results=[media])
    resolver = MetadataResolver(catalog=_catalog(), anilist=anilist, limiters=_limiters())

    metadata = asyncio.run(resolver.resolve("Attack on Titan", 2013, ANIME))

    assert metadata is not None
    assert metadata.provider == "anilist"
    assert metadata.anilist_id == "16498"
    assert metadata.mal_id == "16498"
    assert metadata.anidb_id == "9541"


def test_failing_tier_falls_through_to_jikan_without_year() -> None:
    anilist = FakeAniList(error=RuntimeError("boom"))
    jikan = FakeJikan([{"mal_id": 5114, "title": "Fullmetal Alchemist Brotherhood", "type": "TV"}])
    resolver = MetadataResolver(anilist=anilist, jikan=jikan, limiters=_limiters())

    metadata = asyncio.run(resolver.resolve("Fullmetal Alchemist Brotherhood", 2009, ANIME))

    assert metadata is not None
    assert metadata.mal_id == "5114"
    assert jikan.search_calls == [("Fullmetal Alchemist Brotherhood", 2009), ("Fullmetal Alchemist Brotherhood", None)]


def test_series_chain_ends_with_tmdb() -> None:
    resolver = MetadataResolver(anilist=FakeAniList(), jikan=FakeJikan(), tmdb=FakeTMDb(), limiters=_limiters())

    names = [strategy.name for strategy in resolver.strategies(SERIES)]
    metadata = asyncio.run(resolver.resolve("Breaking Bad", None, SERIES))

    assert names == ["catalog", "anilist_search", "jikan_search", "tmdb_series"]
    assert metadata is not None
    assert metadata.tmdb_id == "1396"


def test_movie_chain_starts_with_tmdb() -> None:
    resolver = MetadataResolver(jikan=FakeJikan(), tmdb=FakeTMDb(), limiters=_limiters())

    names = [strategy.name for strategy in resolver.strategies(MOVIE)]
    metadata = asyncio.run(resolver.resolve("The Matrix", 1999, MOVIE))

    assert names == ["tmdb_movie", "jikan_search"]
    assert metadata is not None
    assert metadata.tmdb_id == "603"


def test_blank_name_resolves_to_none() -> None:
    resolver = MetadataResolver(anilist=FakeAniList(), limiters=_limiters())
    assert asyncio.run(resolver.resolve("   ", None, ANIME)) is None


def test_episode_metadata_requires_tmdb_id() -> None:
    tmdb = FakeTMDb()
    resolver = MetadataResolver(tmdb=tmdb, limiters=_limiters())

    episode = asyncio.run(resolver.get_episode_metadata(UnifiedMetadata(tmdb_id="1396"), 1, 2))
    missing = asyncio.run(resolver.get_episode_metadata(UnifiedMetadata(anilist_id="1"), 1, 2))

    assert episode is not None and episode.name == "Episode 2"
    assert missing is None
    assert tmdb.episode_calls == [("1396", 1, 2)]


def test_from_settings_without_tmdb_key(tmp_path) -> None:
    resolver = MetadataResolver.from_settings({"catalog": {"enabled": False}}, tmp_path, env={})

    assert resolver.tmdb is None
    assert resolver.catalog_enabled is False
    assert resolver.limiters["anidb"].min_interval == 2.0
