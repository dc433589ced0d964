# SPDX-License-Identifier: Apache-2.0
"""
Client configuration.
Asserts:
  • Base URL loses exactly one trailing slash; endpoints never double-slash
  • Timeout defaults to 60000 ms and rejects non-positive / non-numeric values
  • Headers are coerced to strings and exposed read-only
  • from_env reads URL, TIMEOUT_MS and HEADERS with searchable errors
"""

from __future__ import annotations

import pytest

from remote_runnable.config import BAD_CONFIG, DEFAULT_TIMEOUT_MS, ClientConfig


def test_trailing_slash_removed_and_endpoint_joined() -> None:
    cfg = ClientConfig(url="http://host/api/")
    assert cfg.url == "http://host/api"
    assert cfg.endpoint("/invoke") == "http://host/api/invoke"
    assert cfg.endpoint("stream_log") == "http://host/api/stream_log"


def test_url_without_trailing_slash_is_unchanged() -> None:
    assert ClientConfig(url="http://host/api").url == "http://host/api"


def test_only_one_trailing_slash_is_removed() -> None:
    assert ClientConfig(url="http://host/api//").url == "http://host/api/"


@pytest.mark.parametrize("url", ["", "   ", None])
def test_empty_url_rejected(url) -> None:
    with pytest.raises(ValueError) as exc_info:
        ClientConfig(url=url)
    assert BAD_CONFIG in str(exc_info.value)


def test_timeout_defaults_and_seconds_view() -> None:
    cfg = ClientConfig(url="http://host")
    assert cfg.timeout_ms == DEFAULT_TIMEOUT_MS == 60_000
    assert cfg.timeout_s == 60.0
    assert ClientConfig(url="http://host", timeout_ms=None).timeout_ms == DEFAULT_TIMEOUT_MS


@pytest.mark.parametrize("timeout_ms", [0, -5, True, "100"])
def test_invalid_timeouts_rejected(timeout_ms) -> None:
    with pytest.raises(ValueError) as exc_info:
        ClientConfig(url="http://host", timeout_ms=timeout_ms)
    assert BAD_CONFIG in str(exc_info.value)


def test_headers_coerced_and_read_only() -> None:
    cfg = ClientConfig(url="http://host", headers={"X-Retries": 3})
    assert cfg.headers == {"X-Retries": "3"}
    with pytest.raises(TypeError):
        cfg.headers["X-Other"] = "1"  # type: ignore[index]


def test_request_headers_merge_with_configured_winning() -> None:
    cfg = ClientConfig(
        url="http://host",
        headers={"Authorization": "Bearer t", "Content-Type": "application/json; charset=utf-8"},
    )
    headers = cfg.request_headers()
    assert headers["Authorization"] == "Bearer t"
    assert headers["Content-Type"] == "application/json; charset=utf-8"
    assert ClientConfig(url="http://host").request_headers() == {"Content-Type": "application/json"}


def test_config_is_frozen() -> None:
    cfg = ClientConfig(url="http://host")
    with pytest.raises(AttributeError):
        cfg.url = "http://other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


def test_from_env_reads_all_fields() -> None:
    cfg = ClientConfig.from_env(
        environ={
            "REMOTE_RUNNABLE_URL": "http://host/chain/",
            "REMOTE_RUNNABLE_TIMEOUT_MS": "2500",
            "REMOTE_RUNNABLE_HEADERS": '{"Authorization": "Bearer abc"}',
        }
    )
    assert cfg.url == "http://host/chain"
    assert cfg.timeout_ms == 2500
    assert cfg.headers == {"Authorization": "Bearer abc"}


def test_from_env_custom_prefix_and_defaults() -> None:
    cfg = ClientConfig.from_env("MY_", environ={"MY_URL": "http://host"})
    assert cfg.timeout_ms == DEFAULT_TIMEOUT_MS
    assert dict(cfg.headers) == {}


def test_from_env_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMOTE_RUNNABLE_URL", "http://from-env")
    monkeypatch.delenv("REMOTE_RUNNABLE_TIMEOUT_MS", raising=False)
    monkeypatch.delenv("REMOTE_RUNNABLE_HEADERS", raising=False)
    assert ClientConfig.from_env().url == "http://from-env"


@pytest.mark.parametrize(
    "environ,fragment",
    [
        ({}, "URL is not set"),
        ({"REMOTE_RUNNABLE_URL": "http://h", "REMOTE_RUNNABLE_TIMEOUT_MS": "soon"}, "TIMEOUT_MS"),
        ({"REMOTE_RUNNABLE_URL": "http://h", "REMOTE_RUNNABLE_HEADERS": "{not json"}, "not valid JSON"),
        ({"REMOTE_RUNNABLE_URL": "http://h", "REMOTE_RUNNABLE_HEADERS": "[1, 2]"}, "JSON object"),
    ],
)
def test_from_env_errors(environ, fragment) -> None:
    with pytest.raises(ValueError) as exc_info:
        ClientConfig.from_env(environ=environ)
    msg = str(exc_info.value)
    assert BAD_CONFIG in msg
    assert fragment in msg
