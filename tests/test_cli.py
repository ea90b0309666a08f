"""Tests for command-line argument handling."""

from __future__ import annotations

import pytest

from medialib_api import DEFAULT_CORS, DEFAULT_PORT, _resolve_bind_host, parse_args, resolve_api_settings


@pytest.mark.parametrize(
    "candidate, expected",
    [
        (None, "127.0.0.1"),
        ("", "127.0.0.1"),
        ("localhost", "127.0.0.1"),
        ("::1", "127.0.0.1"),
        ("127.0.0.2", "127.0.0.2"),
    ],
)
def test_bind_host_stays_on_loopback(candidate, expected) -> None:
    assert _resolve_bind_host(candidate) == expected


def test_bind_host_refuses_public_address() -> None:
    with pytest.raises(ValueError):
        _resolve_bind_host("0.0.0.0")


def test_settings_fill_missing_arguments() -> None:
    args = parse_args([])
    settings = {"api": {"host": "localhost", "port": "8123", "api_key": "from-settings", "lan_only": False}}

    host, port, api_key, cors, lan_only = resolve_api_settings(args, settings)

    assert (host, port, api_key) == ("127.0.0.1", 8123, "from-settings")
    assert cors == DEFAULT_CORS
    assert lan_only is False


def test_arguments_override_settings() -> None:
    args = parse_args(["--port", "9000", "--api-key", "cli", "--cors", "http://tv.local", "--scan", "quick"])

    host, port, api_key, cors, lan_only = resolve_api_settings(args, {"api": {"port": 1}})

    assert (port, api_key, cors) == (9000, "cli", ["http://tv.local"])
    assert lan_only is True
    assert args.scan == "quick"


def test_invalid_port_falls_back_to_default() -> None:
    args = parse_args([])

    assert resolve_api_settings(args, {"api": {"port": "many"}})[1] == DEFAULT_PORT
