"""Poster and backdrop downloads into the local image cache."""
from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Optional

import requests
from PIL import Image, UnidentifiedImageError

from metadata.http import USER_AGENT

LOGGER = logging.getLogger("medialib.background.images")

MAX_IMAGE_BYTES = 20 * 1024 * 1024

_FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
    "BMP": "bmp",
}


class ImageDownloadError(RuntimeError):
    pass


def image_extension(data: bytes) -> str:
    """Return the file extension for *data*; raises when Pillow cannot read it."""

    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
            image.verify()
    except (OSError, UnidentifiedImageError) as exc:
        raise ImageDownloadError(f"invalid image data: {exc}") from exc
    return _FORMAT_EXTENSIONS.get(str(image_format or "").upper(), "jpg")


class ImageDownloader:
    def __init__(
        self,
        images_dir: Path,
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.images_dir = Path(images_dir)
        self.timeout = float(timeout)
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def target_path(self, item_id: str, image_type: str, extension: str) -> Path:
        return self.images_dir / item_id / f"{image_type}.{extension}"

    def download(self, item_id: str, image_type: str, url: str) -> Path:
        """Fetch *url* and store it as ``<images>/<item>/<type>.<ext>``."""

        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ImageDownloadError(f"request failed: {exc}") from exc
        if response.status_code >= 300:
            raise ImageDownloadError(f"HTTP {response.status_code} for {url}")
        data = response.content
        if not data:
            raise ImageDownloadError(f"empty body for {url}")
        if len(data) > MAX_IMAGE_BYTES:
            raise ImageDownloadError(f"image too large ({len(data)} bytes)")
        target = self.target_path(item_id, image_type, image_extension(data))
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_suffix(target.suffix + ".part")
        with open(tmp_path, "wb") as handle:
            handle.write(data)
        os.replace(tmp_path, target)
        LOGGER.debug("Stored %s image for %s at %s", image_type, item_id, target)
        return target


__all__ = ["ImageDownloadError", "ImageDownloader", "MAX_IMAGE_BYTES", "image_extension"]
