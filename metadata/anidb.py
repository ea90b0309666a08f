"""AniDB HTTP API gateway (id lookups only)."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Optional

import requests

from .http import build_session, request_text
from .types import PROVIDER_ANIDB, UnifiedMetadata

LOGGER = logging.getLogger("medialib.metadata.anidb")

ANIDB_API_BASE = "http://api.anidb.net:9001/httpapi"
ANIDB_IMAGE_BASE = "https://cdn.anidb.net/images/main"

_XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"


def _text(root: ET.Element, path: str) -> Optional[str]:
    node = root.find(path)
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    return value or None


def _title(root: ET.Element, kind: str, lang: Optional[str] = None) -> Optional[str]:
    for node in root.iterfind("titles/title"):
        if node.get("type") != kind:
            continue
        if lang is not None and node.get(_XML_LANG) != lang:
            continue
        if node.text and node.text.strip():
            return node.text.strip()
    return None


def parse_anime_xml(xml_text: str, aid: int) -> Optional[UnifiedMetadata]:
    """Translate an ``anime`` response document; errors and nameless records yield ``None``."""

    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        LOGGER.debug("AniDB returned malformed XML for %s: %s", aid, exc)
        return None
    if root.tag == "error" or root.find("error") is not None:
        message = root.text if root.tag == "error" else _text(root, "error")
        LOGGER.warning("AniDB error for aid %s: %s", aid, message)
        return None

    name = _title(root, "main") or _title(root, "official")
    if not name:
        return None
    premiere = _text(root, "startdate")
    year: Optional[int] = None
    if premiere:
        head = premiere.split("-", 1)[0]
        year = int(head) if head.isdigit() else None
    episodes = _text(root, "episodecount")
    rating_text = _text(root, "ratings/permanent") or _text(root, "ratings/temporary")
    try:
        rating = float(rating_text) if rating_text else None
    except ValueError:
        rating = None
    picture = _text(root, "picture")
    return UnifiedMetadata(
        anidb_id=str(aid),
        name=name,
        name_original=_title(root, "official", "ja"),
        overview=_text(root, "description"),
        year=year,
        premiere_date=premiere,
        community_rating=rating,
        poster_url=f"{ANIDB_IMAGE_BASE}/{picture}" if picture else None,
        episode_count=int(episodes) if episodes and episodes.isdigit() else None,
        provider=PROVIDER_ANIDB,
    )


class AniDBGateway:
    name = PROVIDER_ANIDB

    def __init__(
        self,
        *,
        client: str = "medialib",
        client_ver: int = 1,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client = client
        self.client_ver = client_ver
        self.timeout = timeout
        self.session = session or build_session()

    def get_by_id(self, aid: str | int) -> Optional[UnifiedMetadata]:
        try:
            anime_id = int(aid)
        except (TypeError, ValueError):
            return None
        params = {
            "request": "anime",
            "client": self.client,
            "clientver": self.client_ver,
            "protover": 1,
            "aid": anime_id,
        }
        body = request_text(self.session, ANIDB_API_BASE, timeout=self.timeout, provider=self.name, params=params)
        if body is None:
            return None
        return parse_anime_xml(body, anime_id)


__all__ = ["ANIDB_API_BASE", "ANIDB_IMAGE_BASE", "AniDBGateway", "parse_anime_xml"]
