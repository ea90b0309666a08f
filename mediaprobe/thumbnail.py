"""Single-frame thumbnail extraction with ffmpeg."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

LOGGER = logging.getLogger("medialib.mediaprobe.thumbnail")

DEFAULT_TIMESTAMP_S = 30.0
MIN_TIMESTAMP_S = 5.0
MAX_TIMESTAMP_S = 300.0
DEFAULT_WIDTH = 480


class ThumbnailError(RuntimeError):
    pass


@dataclass(slots=True)
class ThumbnailConfig:
    ffmpeg_path: Optional[str] = None
    width: int = DEFAULT_WIDTH
    timeout_s: float = 60.0

    def resolved_ffmpeg(self) -> Optional[str]:
        if self.ffmpeg_path:
            return self.ffmpeg_path
        configured = os.environ.get("FFMPEG_PATH")
        if configured and Path(configured).exists():
            return configured
        return shutil.which("ffmpeg")


def calculate_thumbnail_timestamp(duration_s: Optional[float]) -> float:
    """10% into the video, kept between 5 s and 5 min and before the last second."""

    if duration_s is None or duration_s <= 0:
        return DEFAULT_TIMESTAMP_S
    timestamp = min(max(duration_s * 0.1, MIN_TIMESTAMP_S), MAX_TIMESTAMP_S)
    timestamp = min(timestamp, duration_s - 1.0)
    return max(timestamp, 0.0)


def _ffmpeg_command(ffmpeg: str, video_path: Path, output_path: Path, timestamp: float, width: int, *, fast: bool) -> List[str]:
    seek = ["-ss", f"{timestamp:.3f}"]
    cmd = [ffmpeg, "-hide_banner", "-loglevel", "error"]
    if fast:
        cmd += seek + ["-i", str(video_path)]
    else:
        cmd += ["-i", str(video_path)] + seek
    cmd += ["-vframes", "1", "-vf", f"scale={int(width)}:-1", "-q:v", "5", "-y", str(output_path)]
    return cmd


def verify_image(path: Path) -> bool:
    try:
        with Image.open(path) as image:
            image.verify()
    except (OSError, UnidentifiedImageError):
        return False
    return True


def extract_thumbnail(
    video_path: Path,
    output_path: Path,
    timestamp: float,
    config: Optional[ThumbnailConfig] = None,
) -> Path:
    """Write one frame of *video_path* at *timestamp* to *output_path*.

    Keyframe seeking (``-ss`` before ``-i``) is tried first; when that
    produces nothing the slower accurate seek runs. Raises
    :class:`ThumbnailError` when no valid image was written.
    """

    config = config or ThumbnailConfig()
    ffmpeg = config.resolved_ffmpeg()
    if not ffmpeg:
        raise ThumbnailError("ffmpeg not found")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    last_error = ""
    for fast in (True, False):
        cmd = _ffmpeg_command(ffmpeg, video_path, output_path, timestamp, config.width, fast=fast)
        try:
            proc = subprocess.run(
                cmd,
                check=False,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                timeout=max(1.0, float(config.timeout_s)),
            )
        except subprocess.TimeoutExpired:
            last_error = "ffmpeg timeout"
            continue
        except OSError as exc:
            raise ThumbnailError(f"ffmpeg failed to start: {exc}") from exc
        if proc.returncode == 0 and output_path.exists() and verify_image(output_path):
            return output_path
        last_error = proc.stderr.decode("utf-8", errors="replace").strip() or f"exit code {proc.returncode}"
        LOGGER.debug("ffmpeg %s seek failed for %s: %s", "fast" if fast else "accurate", video_path, last_error)
    if output_path.exists():
        output_path.unlink()
    raise ThumbnailError(f"thumbnail extraction failed: {last_error}")


__all__ = [
    "DEFAULT_WIDTH",
    "ThumbnailConfig",
    "ThumbnailError",
    "calculate_thumbnail_timestamp",
    "extract_thumbnail",
    "verify_image",
]
