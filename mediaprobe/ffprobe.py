"""ffprobe wrapper used for episode and movie runtimes."""
from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

LOGGER = logging.getLogger("medialib.mediaprobe")

TICKS_PER_SECOND = 10_000_000


@dataclass(slots=True)
class StreamInfo:
    index: int
    kind: str
    codec: Optional[str] = None
    language: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    channels: Optional[int] = None
    title: Optional[str] = None
    default: bool = False


@dataclass(slots=True)
class ProbeData:
    container: Optional[str]
    duration_s: Optional[float]
    bit_rate_kbps: Optional[int]
    streams: List[StreamInfo] = field(default_factory=list)

    @property
    def runtime_ticks(self) -> Optional[int]:
        return seconds_to_ticks(self.duration_s)

    @property
    def video_codec(self) -> Optional[str]:
        for stream in self.streams:
            if stream.kind == "video":
                return stream.codec
        return None

    @property
    def audio_codecs(self) -> List[str]:
        return [stream.codec for stream in self.streams if stream.kind == "audio" and stream.codec]


@dataclass(slots=True)
class ProbeResult:
    ok: bool
    data: Optional[ProbeData] = None
    error: Optional[str] = None
    reason: Optional[str] = None


def seconds_to_ticks(seconds: Optional[float]) -> Optional[int]:
    if seconds is None or seconds <= 0:
        return None
    return int(seconds * TICKS_PER_SECOND)


def find_ffprobe() -> Optional[str]:
    """``FFPROBE_PATH`` when set, else ffprobe on PATH."""

    configured = os.environ.get("FFPROBE_PATH")
    if configured and Path(configured).exists():
        return configured
    return shutil.which("ffprobe")


def ffprobe_available() -> bool:
    return find_ffprobe() is not None


def _safe_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _safe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _stream_from_payload(position: int, stream: Dict[str, Any]) -> StreamInfo:
    tags = stream.get("tags") if isinstance(stream.get("tags"), dict) else {}
    disposition = stream.get("disposition") if isinstance(stream.get("disposition"), dict) else {}
    language = tags.get("language") or tags.get("LANGUAGE")
    codec = stream.get("codec_name") or stream.get("codec_long_name")
    return StreamInfo(
        index=_safe_int(stream.get("index")) if stream.get("index") is not None else position,
        kind=str(stream.get("codec_type") or "unknown").lower(),
        codec=str(codec) if codec else None,
        language=str(language).lower() if language else None,
        width=_safe_int(stream.get("width")),
        height=_safe_int(stream.get("height")),
        channels=_safe_int(stream.get("channels")),
        title=tags.get("title") or None,
        default=bool(disposition.get("default")),
    )


def parse_probe_output(raw: str) -> ProbeData:
    parsed = json.loads(raw or "{}")
    format_section = parsed.get("format") if isinstance(parsed.get("format"), dict) else {}
    container = format_section.get("format_name") or format_section.get("format_long_name")
    bit_rate = _safe_int(format_section.get("bit_rate"))
    streams_payload = parsed.get("streams") if isinstance(parsed.get("streams"), list) else []
    streams = [
        _stream_from_payload(position, stream)
        for position, stream in enumerate(streams_payload)
        if isinstance(stream, dict)
    ]
    return ProbeData(
        container=str(container) if container else None,
        duration_s=_safe_float(format_section.get("duration")),
        bit_rate_kbps=bit_rate // 1000 if bit_rate is not None else None,
        streams=streams,
    )


def run_ffprobe(path: str | Path, *, timeout: float = 30.0) -> ProbeResult:
    """Execute ffprobe for *path*; failures come back as ``ok=False`` results."""

    ffprobe_path = find_ffprobe()
    if not ffprobe_path:
        return ProbeResult(ok=False, error="ffprobe not found", reason="missing_tool")

    cmd = [
        ffprobe_path,
        "-v",
        "error",
        "-show_streams",
        "-show_format",
        "-of",
        "json",
        str(path),
    ]
    try:
        proc = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=max(1.0, float(timeout)),
        )
    except subprocess.TimeoutExpired:
        return ProbeResult(ok=False, error="ffprobe timeout", reason="probe_timeout")
    except OSError as exc:
        return ProbeResult(ok=False, error=f"ffprobe failed: {exc}", reason="probe_error")

    if proc.returncode != 0:
        error_msg = proc.stderr.strip() or proc.stdout.strip() or "ffprobe error"
        return ProbeResult(ok=False, error=error_msg, reason="probe_error")
    try:
        data = parse_probe_output(proc.stdout)
    except json.JSONDecodeError as exc:
        return ProbeResult(ok=False, error=f"invalid ffprobe output: {exc}", reason="probe_error")
    return ProbeResult(ok=True, data=data)


def probe_duration_s(path: str | Path, *, timeout: float = 30.0) -> Optional[float]:
    result = run_ffprobe(path, timeout=timeout)
    if not result.ok or result.data is None:
        LOGGER.debug("Probe failed for %s: %s", path, result.error)
        return None
    return result.data.duration_s


def probe_runtime_ticks(path: str | Path, *, timeout: float = 30.0) -> Optional[int]:
    """Duration of *path* in 100ns ticks, or ``None`` when it cannot be probed."""

    return seconds_to_ticks(probe_duration_s(path, timeout=timeout))


__all__ = [
    "ProbeData",
    "ProbeResult",
    "StreamInfo",
    "TICKS_PER_SECOND",
    "ffprobe_available",
    "find_ffprobe",
    "parse_probe_output",
    "probe_duration_s",
    "probe_runtime_ticks",
    "run_ffprobe",
    "seconds_to_ticks",
]
