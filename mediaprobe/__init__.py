"""ffprobe and ffmpeg helpers."""

from .ffprobe import ProbeData, ProbeResult, StreamInfo, probe_duration_s, probe_runtime_ticks, run_ffprobe, seconds_to_ticks
from .thumbnail import ThumbnailConfig, ThumbnailError, calculate_thumbnail_timestamp, extract_thumbnail

__all__ = [
    "ProbeData",
    "ProbeResult",
    "StreamInfo",
    "ThumbnailConfig",
    "ThumbnailError",
    "calculate_thumbnail_timestamp",
    "extract_thumbnail",
    "probe_duration_s",
    "probe_runtime_ticks",
    "run_ffprobe",
    "seconds_to_ticks",
]
