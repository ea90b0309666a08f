"""FastAPI application exposing scan triggers and library status."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from library.types import LibraryRoot, ScanError

from .auth import APIKeyAuth
from .models import (
    HealthResponse,
    LibrariesResponse,
    LibraryInfo,
    MissingMetadataResponse,
    QueueCounts,
    QueuesResponse,
    QuickScanResponse,
    ScanResultResponse,
    StatsResponse,
)
from .services import MediaLibraryServices

LOGGER = logging.getLogger("medialib.api")

API_VERSION = "0.1.0"


@dataclass(slots=True)
class APIServerConfig:
    """Runtime configuration for the FastAPI application."""

    services: MediaLibraryServices
    api_key: Optional[str]
    cors_origins: Sequence[str]
    app_version: str = API_VERSION
    lan_only: bool = True
    start_background: bool = True


_LOCAL_CLIENT_SENTINELS = {
    "127.0.0.1",
    "::1",
    "localhost",
    "testclient",
}


def _normalise_remote_host(host: Optional[str]) -> Optional[str]:
    if host is None:
        return None
    value = host.strip().lower()
    if not value:
        return None
    if value.startswith("::ffff:"):
        value = value.rsplit(":", 1)[-1]
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if "%" in value:  # strip IPv6 scope id
        value = value.split("%", 1)[0]
    return value


def _is_loopback_host(host: Optional[str]) -> bool:
    value = _normalise_remote_host(host)
    if value is None:
        return True
    if value in _LOCAL_CLIENT_SENTINELS:
        return True
    return value.startswith("127.")


def create_app(config: APIServerConfig) -> FastAPI:
    """Create a FastAPI application bound to the given configuration."""

    app = FastAPI(
        title="medialib Local API",
        version=config.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    allowed_origins: List[str] = [origin for origin in config.cors_origins if origin]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    auth_dependency = APIKeyAuth(config.api_key)
    services = config.services
    scanner = services.scanner
    store = services.store
    lan_only = bool(config.lan_only)

    @app.on_event("startup")
    async def _startup() -> None:
        if config.start_background:
            await services.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await services.stop()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response: Optional[Response] = None
        client_host = request.client.host if request.client else None
        try:
            if lan_only and not _is_loopback_host(client_host):
                LOGGER.warning("Rejected non-local HTTP request from %s", client_host or "<unknown>")
                response = JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "LAN access disabled"})
            else:
                response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response is not None else 500
            LOGGER.info(
                "%s %s -> %s (%.1f ms) ip=%s",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                client_host or "-",
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid parameters", "details": exc.errors()},
        )

    def ensure_library(library_id: str) -> LibraryRoot:
        library = store.get_library(library_id)
        if library is None:
            raise HTTPException(status_code=404, detail=f"Unknown library: {library_id}")
        return library

    @app.get("/v1/health", response_model=HealthResponse)
    async def health_check(_: str = Depends(auth_dependency)) -> HealthResponse:
        resolver = services.resolver
        return HealthResponse(
            ok=True,
            version=config.app_version,
            time_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            scanner_busy=scanner.busy,
            catalog_enabled=bool(resolver is not None and resolver.catalog_enabled),
            tmdb_enabled=bool(resolver is not None and resolver.tmdb is not None),
            workers_running=services.workers_running,
        )

    @app.get("/v1/libraries", response_model=LibrariesResponse)
    async def libraries(_: str = Depends(auth_dependency)) -> LibrariesResponse:
        rows = []
        for library in store.list_libraries():
            counts = store.counts(library.id)
            rows.append(
                LibraryInfo(
                    id=library.id,
                    name=library.name,
                    path=str(library.path),
                    kind=library.kind,
                    series=counts["Series"],
                    episodes=counts["Episode"],
                    movies=counts["Movie"],
                )
            )
        return LibrariesResponse(libraries=rows)

    @app.get("/v1/stats", response_model=StatsResponse)
    async def stats(_: str = Depends(auth_dependency)) -> StatsResponse:
        counts = store.counts()
        return StatsResponse(
            libraries=len(store.list_libraries()),
            series=counts["Series"],
            episodes=counts["Episode"],
            movies=counts["Movie"],
            unmatched=counts["Unmatched"],
        )

    @app.get("/v1/queues", response_model=QueuesResponse)
    async def queues(_: str = Depends(auth_dependency)) -> QueuesResponse:
        images = services.image_queue.counts()
        thumbnails = services.thumbnail_queue.counts()
        return QueuesResponse(
            images=QueueCounts(pending=images["pending"], failed=images["failed"]),
            thumbnails=QueueCounts(pending=thumbnails["pending"], failed=thumbnails["failed"]),
        )

    @app.post("/v1/libraries/{library_id}/scan", response_model=ScanResultResponse)
    async def scan_library(library_id: str, _: str = Depends(auth_dependency)) -> ScanResultResponse:
        library = ensure_library(library_id)
        try:
            result = await scanner.scan_library(library)
        except ScanError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return ScanResultResponse(**result.to_dict())

    @app.post("/v1/libraries/{library_id}/quick-scan", response_model=QuickScanResponse)
    async def quick_scan_library(library_id: str, _: str = Depends(auth_dependency)) -> QuickScanResponse:
        library = ensure_library(library_id)
        try:
            result = await scanner.quick_scan_library(library)
        except ScanError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return QuickScanResponse(**result.to_dict())

    @app.post("/v1/libraries/refresh", response_model=ScanResultResponse)
    async def refresh_libraries(_: str = Depends(auth_dependency)) -> ScanResultResponse:
        result = await scanner.refresh_all_libraries()
        return ScanResultResponse(**result.to_dict())

    @app.post("/v1/libraries/quick-scan", response_model=QuickScanResponse)
    async def quick_scan_libraries(_: str = Depends(auth_dependency)) -> QuickScanResponse:
        result = await scanner.quick_scan_all_libraries()
        return QuickScanResponse(**result.to_dict())

    @app.post("/v1/metadata/missing", response_model=MissingMetadataResponse)
    async def missing_metadata(
        library_id: Optional[str] = Query(None),
        _: str = Depends(auth_dependency),
    ) -> MissingMetadataResponse:
        if library_id:
            ensure_library(library_id)
        result = await scanner.scan_missing_metadata(library_id)
        return MissingMetadataResponse(library_id=library_id, **result.to_dict())

    return app


__all__ = [
    "API_VERSION",
    "APIServerConfig",
    "create_app",
]
