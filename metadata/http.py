from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests

LOGGER = logging.getLogger("medialib.metadata.http")

USER_AGENT = "medialib/1.0"


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float,
    provider: str,
    params: Optional[Mapping[str, Any]] = None,
    json_body: Optional[Mapping[str, Any]] = None,
) -> Optional[Any]:
    """Perform one request and decode its JSON body.

    Network failures, non-2xx statuses and undecodable bodies are logged
    and turned into ``None``.
    """

    try:
        response = session.request(method, url, params=params, json=json_body, timeout=timeout)
    except requests.RequestException as exc:
        LOGGER.debug("%s request failed: %s", provider, exc)
        return None
    if response.status_code >= 300:
        LOGGER.debug("%s HTTP %s for %s", provider, response.status_code, url)
        return None
    try:
        return response.json()
    except ValueError:
        LOGGER.debug("%s returned invalid JSON for %s", provider, url)
        return None


def request_text(
    session: requests.Session,
    url: str,
    *,
    timeout: float,
    provider: str,
    params: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.RequestException as exc:
        LOGGER.debug("%s request failed: %s", provider, exc)
        return None
    if response.status_code >= 300:
        LOGGER.debug("%s HTTP %s for %s", provider, response.status_code, url)
        return None
    return response.text


__all__ = ["USER_AGENT", "build_session", "request_json", "request_text"]
