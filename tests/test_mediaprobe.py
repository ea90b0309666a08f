"""Tests for thumbnail timing and ffmpeg invocation."""

from __future__ import annotations

from pathlib import Path

import pytest

from mediaprobe.thumbnail import ThumbnailConfig, ThumbnailError, calculate_thumbnail_timestamp, extract_thumbnail


@pytest.mark.parametrize(
    "duration, expected",
    [
        (None, 30.0),
        (0, 30.0),
        (1440.0, 144.0),
        (20.0, 5.0),
        (4.0, 3.0),
        (7200.0, 300.0),
    ],
)
def test_calculate_thumbnail_timestamp(duration, expected) -> None:
    assert calculate_thumbnail_timestamp(duration) == pytest.approx(expected)


def test_extract_thumbnail_without_ffmpeg(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FFMPEG_PATH", raising=False)
    monkeypatch.setattr("mediaprobe.thumbnail.shutil.which", lambda name: None)

    with pytest.raises(ThumbnailError):
        extract_thumbnail(tmp_path / "a.mkv", tmp_path / "out.jpg", 10.0, ThumbnailConfig())
