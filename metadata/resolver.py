"""Provider chains turning a cleaned title into one unified metadata record.

Each classification maps to an ordered list of strategies. A strategy is a
coroutine ``(name, year) -> Optional[UnifiedMetadata]``; the first one that
returns a record wins. Every outbound call goes through the provider's
:class:`~metadata.ratelimit.RateLimiter` and runs in a worker thread.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from catalog import AnimeCatalog, CatalogEntry, load_catalog_settings
from core.paths import get_catalog_cache_dir
from naming.classify import ANIME, MOVIE, SERIES

from .anidb import AniDBGateway
from .anilist import AniListGateway, media_to_metadata, select_match
from .jikan import JikanGateway, anime_to_metadata, find_best_match
from .ratelimit import RateLimiter
from .settings import MetadataSettings, load_metadata_settings
from .tmdb import TMDbGateway, select_movie, select_series
from .types import PROVIDER_ANIDB, PROVIDER_ANILIST, PROVIDER_JIKAN, PROVIDER_TMDB, EpisodeMetadata, UnifiedMetadata

LOGGER = logging.getLogger("medialib.metadata.resolver")

StrategyFunc = Callable[[str, Optional[int]], Awaitable[Optional[UnifiedMetadata]]]


@dataclass(slots=True, frozen=True)
class ResolverStrategy:
    name: str
    run: StrategyFunc


def _entry_ids(entry: CatalogEntry) -> Dict[str, Optional[str]]:
    return {
        "anilist": entry.anilist_id,
        "anidb": entry.anidb_id,
        "mal": entry.mal_id,
        "kitsu": entry.kitsu_id,
    }


class MetadataResolver:
    def __init__(
        self,
        settings: Optional[MetadataSettings] = None,
        *,
        catalog: Optional[AnimeCatalog] = None,
        anilist: Optional[AniListGateway] = None,
        jikan: Optional[JikanGateway] = None,
        anidb: Optional[AniDBGateway] = None,
        tmdb: Optional[TMDbGateway] = None,
        limiters: Optional[Mapping[str, RateLimiter]] = None,
    ) -> None:
        self.settings = settings or MetadataSettings()
        self.catalog = catalog
        self.anilist = anilist
        self.jikan = jikan
        self.anidb = anidb
        self.tmdb = tmdb
        self.limiters: Dict[str, RateLimiter] = dict(limiters or {})
        for provider in (PROVIDER_ANILIST, PROVIDER_JIKAN, PROVIDER_ANIDB, PROVIDER_TMDB):
            self.limiters.setdefault(provider, RateLimiter(self.settings.min_interval_s(provider)))

    @classmethod
    def from_settings(
        cls,
        data: Mapping[str, Any],
        working_dir: Path,
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> "MetadataResolver":
        env = os.environ if env is None else env
        settings = load_metadata_settings(data, env=env)
        catalog_settings = load_catalog_settings(dict(data), env=dict(env))
        catalog = AnimeCatalog(get_catalog_cache_dir(working_dir), catalog_settings)
        tmdb_gateway = None
        if settings.tmdb_api_key:
            tmdb_gateway = TMDbGateway(settings.tmdb_api_key, language=settings.tmdb_lang, timeout=settings.timeout_s)
        else:
            LOGGER.info("TMDB_API_KEY not set; TMDb lookups disabled")
        return cls(
            settings,
            catalog=catalog,
            anilist=AniListGateway(timeout=settings.timeout_s),
            jikan=JikanGateway(timeout=settings.timeout_s),
            anidb=AniDBGateway(
                client=settings.anidb_client,
                client_ver=settings.anidb_client_ver,
                timeout=settings.timeout_s,
            ),
            tmdb=tmdb_gateway,
        )

    @property
    def catalog_enabled(self) -> bool:
        return self.catalog is not None and self.catalog.enabled

    async def _call(self, provider: str, func: Callable[..., Any], *args: Any) -> Any:
        await self.limiters[provider].await_turn()
        return await asyncio.to_thread(func, *args)

    # chains

    def strategies(self, classification: str) -> List[ResolverStrategy]:
        anime_chain = [
            ResolverStrategy("catalog", self._try_catalog),
            ResolverStrategy("anilist_search", self._try_anilist_search),
            ResolverStrategy("jikan_search", self._try_jikan_search),
        ]
        if classification == MOVIE:
            return [
                ResolverStrategy("tmdb_movie", self._try_tmdb_movie),
                ResolverStrategy("jikan_search", self._try_jikan_search),
            ]
        if classification == SERIES:
            return anime_chain + [ResolverStrategy("tmdb_series", self._try_tmdb_series)]
        return anime_chain

    async def resolve(self, name: str, year: Optional[int], classification: str = ANIME) -> Optional[UnifiedMetadata]:
        """Run the chain for *classification*; ``None`` when every tier misses."""

        if not name.strip():
            return None
        for strategy in self.strategies(classification):
            try:
                metadata = await strategy.run(name, year)
            except Exception as exc:
                LOGGER.warning("%s lookup failed for %r: %s", strategy.name, name, exc)
                continue
            if metadata is None:
                LOGGER.debug("No %s match for %r", strategy.name, name)
                continue
            LOGGER.info("Resolved %r via %s -> %s", name, strategy.name, metadata.name or "Unknown")
            return metadata
        LOGGER.debug("No metadata found for %r (%s)", name, classification)
        return None

    # tiers

    async def _try_catalog(self, name: str, year: Optional[int]) -> Optional[UnifiedMetadata]:
        catalog = self.catalog
        if catalog is None or not catalog.enabled:
            return None
        matches = await asyncio.to_thread(catalog.search, name, year)
        if not matches:
            return None
        best = matches[0]
        catalog_settings = catalog.settings
        if best.score < catalog_settings.min_score:
            LOGGER.debug("Catalog match score %.1f too low for %r", best.score, name)
            return None
        if year is not None and best.entry.year is not None:
            if abs(year - best.entry.year) > catalog_settings.max_year_diff:
                LOGGER.warning(
                    "Year mismatch for %r: query=%s, match=%s (%s), skipping",
                    name,
                    year,
                    best.entry.year,
                    best.entry.title,
                )
                return None
        entry = best.entry
        ids = _entry_ids(entry)
        LOGGER.debug(
            "Catalog hit for %r: %s (score=%.1f, ids=%s)",
            name,
            entry.title,
            best.score,
            {key: value for key, value in ids.items() if value},
        )
        lookups = (
            (PROVIDER_ANILIST, self.anilist, entry.anilist_id),
            (PROVIDER_ANIDB, self.anidb, entry.anidb_id),
            (PROVIDER_JIKAN, self.jikan, entry.mal_id),
        )
        for provider, gateway, provider_id in lookups:
            if gateway is None or not provider_id:
                continue
            try:
                metadata = await self._call(provider, gateway.get_by_id, provider_id)
            except Exception as exc:
                LOGGER.debug("%s lookup of catalog id %s failed: %s", provider, provider_id, exc)
                continue
            if metadata is not None:
                metadata.fill_missing_ids(ids)
                return metadata
        return None

    async def _try_anilist_search(self, name: str, year: Optional[int]) -> Optional[UnifiedMetadata]:
        if self.anilist is None:
            return None
        results = await self._call(PROVIDER_ANILIST, self.anilist.search, name, year)
        media = select_match(results, name, year)
        if media is None:
            return None
        return await self._backfill(media_to_metadata(media))

    async def _try_jikan_search(self, name: str, year: Optional[int]) -> Optional[UnifiedMetadata]:
        if self.jikan is None:
            return None
        results = await self._call(PROVIDER_JIKAN, self.jikan.search, name, year)
        if not results and year is not None:
            results = await self._call(PROVIDER_JIKAN, self.jikan.search, name, None)
        anime = find_best_match(results, name, year)
        if anime is None:
            return None
        return await self._backfill(anime_to_metadata(anime))

    async def _try_tmdb_series(self, name: str, year: Optional[int]) -> Optional[UnifiedMetadata]:
        if self.tmdb is None:
            return None
        results = await self._call(PROVIDER_TMDB, self.tmdb.search_series, name, year)
        chosen = select_series(results, name)
        if chosen is None or chosen.get("id") is None:
            return None
        return await self._call(PROVIDER_TMDB, self.tmdb.get_series, chosen["id"])

    async def _try_tmdb_movie(self, name: str, year: Optional[int]) -> Optional[UnifiedMetadata]:
        if self.tmdb is None:
            return None
        results = await self._call(PROVIDER_TMDB, self.tmdb.search_movie, name, year)
        chosen = select_movie(results, name, year)
        if chosen is None or chosen.get("id") is None:
            return None
        return await self._call(PROVIDER_TMDB, self.tmdb.get_movie, chosen["id"])

    async def _backfill(self, metadata: UnifiedMetadata) -> UnifiedMetadata:
        """Fill sibling provider ids from the catalog entry sharing a known id."""

        catalog = self.catalog
        if catalog is None or not catalog.enabled:
            return metadata
        lookups = (
            (catalog.find_by_anilist_id, metadata.anilist_id),
            (catalog.find_by_mal_id, metadata.mal_id),
            (catalog.find_by_anidb_id, metadata.anidb_id),
        )
        for finder, provider_id in lookups:
            if not provider_id:
                continue
            entry = await asyncio.to_thread(finder, provider_id)
            if entry is None:
                continue
            filled = metadata.fill_missing_ids(_entry_ids(entry))
            if filled:
                LOGGER.debug("Backfilled %s for %s from catalog", ", ".join(filled), metadata.name)
            break
        return metadata

    # episodes

    async def get_episode_metadata(
        self,
        series: Optional[UnifiedMetadata | str],
        season: int,
        episode: int,
    ) -> Optional[EpisodeMetadata]:
        """Per-episode details; only TMDb series support this lookup."""

        if self.tmdb is None or not self.settings.fetch_episode_metadata or series is None:
            return None
        tmdb_id = series.tmdb_id if isinstance(series, UnifiedMetadata) else series
        if not tmdb_id:
            return None
        try:
            return await self._call(PROVIDER_TMDB, self.tmdb.get_episode, tmdb_id, season, episode)
        except Exception as exc:
            LOGGER.warning("TMDb episode lookup failed for S%02dE%02d: %s", season, episode, exc)
            return None

    # catalog lifecycle

    async def preload_catalog(self) -> bool:
        catalog = self.catalog
        if catalog is None or not catalog.enabled:
            return False
        return await asyncio.to_thread(catalog.ensure_loaded)

    def unload_catalog(self) -> None:
        if self.catalog is not None:
            self.catalog.unload()


__all__ = ["MetadataResolver", "ResolverStrategy"]
