"""Tests for core.settings helpers."""

from __future__ import annotations

import json
from pathlib import Path

from core.settings import DEFAULT_VIDEO_EXTENSIONS, load_settings, merge_defaults, save_settings


def test_merge_defaults_includes_scanner_block() -> None:
    merged = merge_defaults({})

    scanner = merged["scanner"]
    assert scanner["quick_scan_interval_minutes"] == 15
    assert scanner["full_scan_interval_hours"] == 0
    assert scanner["unmatched_retry_minutes"] == 360
    assert scanner["video_extensions"] == DEFAULT_VIDEO_EXTENSIONS
    assert merged["metadata"]["rate_limits_ms"]["anidb"] == 2000
    assert merged["api"]["api_key"] is None
    assert merged["libraries"] == []


def test_merge_defaults_keeps_unknown_sections() -> None:
    merged = merge_defaults({"custom": {"flag": True}, "scanner": {"enabled": False}})

    assert merged["custom"] == {"flag": True}
    assert merged["scanner"]["enabled"] is False
    assert merged["scanner"]["scan_on_startup"] is True


def test_save_settings_upgrades_partial_file(tmp_path: Path) -> None:
    working_dir = tmp_path
    path = working_dir / "settings.json"

    legacy = {
        "libraries": [{"name": "Anime", "path": "/media/anime"}],
        "metadata": {"tmdb": {"api_key": "abc"}},
    }

    path.write_text(json.dumps(legacy), encoding="utf-8")

    loaded = load_settings(working_dir)
    assert loaded["metadata"]["tmdb"]["api_key"] == "abc"
    assert loaded["metadata"]["tmdb"]["lang"] == "en-US"
    assert loaded["working_dir"] == str(working_dir)

    save_settings(legacy, working_dir)
    upgraded = json.loads(path.read_text(encoding="utf-8"))

    assert upgraded["version"] == 1
    assert upgraded["libraries"][0]["name"] == "Anime"
    assert upgraded["queues"]["thumbnail_width"] == 480


def test_load_settings_ignores_corrupt_file(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")

    loaded = load_settings(tmp_path)

    assert loaded["scanner"]["enabled"] is True


def test_load_settings_reports_unknown_keys(tmp_path: Path) -> None:
    payload = {"scanner": {"enabled": True, "turbo": 1}, "legacy": {}}
    (tmp_path / "settings.json").write_text(json.dumps(payload), encoding="utf-8")

    loaded = load_settings(tmp_path)

    report = json.loads((tmp_path / "logs" / "settings_unknown.json").read_text(encoding="utf-8"))
    assert report["unknown"] == ["legacy", "scanner.turbo"]
    assert loaded["legacy"] == {}
