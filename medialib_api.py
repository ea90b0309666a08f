"""CLI entry-point to launch the medialib scanner and HTTP API."""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import uvicorn

from api.server import API_VERSION, APIServerConfig, create_app
from api.services import MediaLibraryServices
from core.logging_utils import configure_json_logging, redact_secret
from core.paths import resolve_working_dir
from core.settings import load_settings

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 27183
DEFAULT_CORS = ["http://localhost", "http://127.0.0.1"]


def _resolve_bind_host(candidate: Optional[str]) -> str:
    host = (candidate or DEFAULT_HOST).strip()
    if not host:
        host = DEFAULT_HOST
    norm = host.lower()
    if norm == "localhost":
        return "127.0.0.1"
    if norm.startswith("::ffff:"):
        norm = norm.split("::ffff:")[-1]
    if norm == "::1":
        return "127.0.0.1"
    if norm.startswith("127."):
        return norm
    raise ValueError(
        f"Refusing to bind API server to non-loopback host '{candidate}'. medialib only serves on localhost."
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Start the local medialib scanner and API service.")
    parser.add_argument("--host", default=None, help="Bind host (default from settings.json)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default from settings.json)")
    parser.add_argument("--api-key", dest="api_key", default=None, help="Override the API key for this session")
    parser.add_argument(
        "--cors",
        action="append",
        dest="cors",
        default=None,
        help="Additional allowed CORS origin (repeatable).",
    )
    parser.add_argument(
        "--scan",
        choices=["full", "quick", "refresh", "missing"],
        default=None,
        help="Run one scan pass over every library and exit instead of serving.",
    )
    return parser.parse_args(argv)


def resolve_api_settings(args: argparse.Namespace, settings: Dict[str, Any]) -> tuple[str, int, Optional[str], List[str], bool]:
    api_settings = settings.get("api") if isinstance(settings.get("api"), dict) else {}

    host = _resolve_bind_host(args.host or api_settings.get("host") or DEFAULT_HOST)
    port = args.port or api_settings.get("port") or DEFAULT_PORT
    try:
        port = int(port)
    except (TypeError, ValueError):
        port = DEFAULT_PORT

    api_key = args.api_key if args.api_key else api_settings.get("api_key")
    if args.cors:
        cors = list(args.cors)
    else:
        cors = list(api_settings.get("cors_origins") or DEFAULT_CORS)
    lan_only = bool(api_settings.get("lan_only", True))
    return host, port, api_key, cors, lan_only


async def run_scan(services: MediaLibraryServices, mode: str) -> Dict[str, int]:
    scanner = services.scanner
    if mode == "quick":
        result = await scanner.quick_scan_all_libraries()
    elif mode == "refresh":
        result = await scanner.refresh_all_libraries()
    elif mode == "missing":
        result = await scanner.scan_missing_metadata()
    else:
        result = await scanner.scan_all_libraries()
    return result.to_dict()


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    args = parse_args(argv)
    working_dir = Path(resolve_working_dir())
    settings = load_settings(working_dir)
    configure_json_logging(working_dir=working_dir)
    try:
        host, port, api_key, cors, lan_only = resolve_api_settings(args, settings)
    except ValueError as exc:
        logging.error("%s", exc)
        return 2

    services = MediaLibraryServices(working_dir=working_dir, settings=settings)
    if args.scan:
        try:
            summary = asyncio.run(run_scan(services, args.scan))
        finally:
            services.close()
        logging.info("%s scan finished: %s", args.scan, ", ".join(f"{k}={v}" for k, v in summary.items()))
        return 0

    if not api_key:
        logging.warning("API key is not configured; all requests will be rejected with 401.")
    else:
        logging.info("API key configured (%s)", redact_secret(api_key))

    config = APIServerConfig(
        services=services,
        api_key=api_key,
        cors_origins=cors,
        app_version=API_VERSION,
        lan_only=lan_only,
    )
    app = create_app(config)

    print(f"API listening on http://{host}:{port}", flush=True)

    uvicorn_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
        access_log=False,
    )
    server = uvicorn.Server(uvicorn_config)
    try:
        server.run()
    finally:
        services.close()
    return 0 if server.started else 1


if __name__ == "__main__":
    raise SystemExit(main())
