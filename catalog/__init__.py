"""Offline anime catalog: download, index and fuzzy title search."""

from .download import CatalogSettings, CatalogUnavailable, load_catalog_settings, load_or_download
from .engine import AnimeCatalog, CatalogMatch, CatalogSnapshot, build_title_index, search_snapshot
from .entries import CatalogEntry, entry_from_mapping, extract_provider_id, parse_catalog_payload
from .similarity import MIN_SCORE, calculate_match_score, string_similarity

__all__ = [
    "AnimeCatalog",
    "CatalogEntry",
    "CatalogMatch",
    "CatalogSettings",
    "CatalogSnapshot",
    "CatalogUnavailable",
    "MIN_SCORE",
    "build_title_index",
    "calculate_match_score",
    "entry_from_mapping",
    "extract_provider_id",
    "load_catalog_settings",
    "load_or_download",
    "parse_catalog_payload",
    "search_snapshot",
    "string_similarity",
]
