"""Pydantic schemas for the medialib local API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health response summarising server readiness and background state."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    scanner_busy: bool = Field(..., description="True while a scan or enrichment pass holds the scanner.")
    catalog_enabled: bool = Field(..., description="True when the offline anime catalog is configured.")
    tmdb_enabled: bool = Field(..., description="True when a TMDB API key is available.")
    workers_running: bool = Field(..., description="True when the image and thumbnail workers are active.")


class LibraryInfo(BaseModel):
    id: str = Field(..., description="Stable library identifier.")
    name: str = Field(..., description="Display name.")
    path: str = Field(..., description="Root directory scanned for this library.")
    kind: str = Field(..., description="Either 'episodic' or 'movie'.")
    series: int = Field(0, ge=0, description="Series items stored for the library.")
    episodes: int = Field(0, ge=0, description="Episode items stored for the library.")
    movies: int = Field(0, ge=0, description="Movie items stored for the library.")


class LibrariesResponse(BaseModel):
    libraries: List[LibraryInfo] = Field(default_factory=list)


class StatsResponse(BaseModel):
    libraries: int = Field(..., ge=0, description="Number of configured libraries.")
    series: int = Field(..., ge=0)
    episodes: int = Field(..., ge=0)
    movies: int = Field(..., ge=0)
    unmatched: int = Field(..., ge=0, description="Series still waiting for a metadata match.")


class QueueCounts(BaseModel):
    pending: int = Field(..., ge=0, description="Jobs waiting to be processed.")
    failed: int = Field(..., ge=0, description="Jobs parked after exhausting their attempts.")


class QueuesResponse(BaseModel):
    images: QueueCounts
    thumbnails: QueueCounts


class ScanResultResponse(BaseModel):
    series_added: int = Field(0, ge=0)
    series_reused: int = Field(0, ge=0)
    episodes_added: int = Field(0, ge=0)
    episodes_from_existing_series: int = Field(
        0, ge=0, description="Episodes attached to a series that already existed."
    )
    movies_added: int = Field(0, ge=0)
    errors: int = Field(0, ge=0, description="Libraries or entries skipped because of filesystem errors.")


class QuickScanResponse(BaseModel):
    files_added: int = Field(0, ge=0)
    files_removed: int = Field(0, ge=0)
    libraries_scanned: int = Field(0, ge=0)
    errors: int = Field(0, ge=0)


class MissingMetadataResponse(BaseModel):
    series_scanned: int = Field(0, ge=0)
    series_updated: int = Field(0, ge=0)
    movies_scanned: int = Field(0, ge=0)
    movies_updated: int = Field(0, ge=0)
    library_id: Optional[str] = Field(None, description="Library the pass was limited to, if any.")


__all__ = [
    "HealthResponse",
    "LibrariesResponse",
    "LibraryInfo",
    "MissingMetadataResponse",
    "QueueCounts",
    "QueuesResponse",
    "QuickScanResponse",
    "ScanResultResponse",
    "StatsResponse",
]
