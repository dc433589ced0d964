# remote_runnable/config.py
# SPDX-License-Identifier: Apache-2.0

"""
Client configuration.

`ClientConfig` is the single, immutable source of connection settings for a
`RemoteRunnable`: base URL, timeout and static headers. Every operation reads
from it and none mutates it, so one client instance can be shared across
threads and tasks.

Environment
-----------
`ClientConfig.from_env()` reads (with the default prefix):

- REMOTE_RUNNABLE_URL         base URL of the hosted runnable (required)
- REMOTE_RUNNABLE_TIMEOUT_MS  request timeout in milliseconds (default 60000)
- REMOTE_RUNNABLE_HEADERS     JSON object of static headers, e.g.
                              '{"Authorization": "Bearer ..."}'
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

#: Default per-request timeout, in milliseconds.
DEFAULT_TIMEOUT_MS: int = 60_000

#: Default prefix for environment variables read by `ClientConfig.from_env`.
ENV_PREFIX: str = "REMOTE_RUNNABLE_"

# Symbolic code for config errors (for log/search friendliness)
BAD_CONFIG = "REMOTE_RUNNABLE_BAD_CONFIG"


@dataclass(frozen=True)
class ClientConfig:
    """
    Immutable connection settings.

    Attributes:
        url:
            Base URL of the hosted runnable. A single trailing slash is
            removed so `url + "/invoke"` never produces a double slash.
        timeout_ms:
            Timeout applied to every request, in milliseconds. Streams are
            bounded by the same budget from request start.
        headers:
            Static headers sent with every request. Values are coerced to
            strings and exposed through a read-only mapping.
    """

    url: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise ValueError(f"{BAD_CONFIG}: url must be a non-empty string")
        url = self.url.strip()
        if url.endswith("/"):
            url = url[:-1]
        object.__setattr__(self, "url", url)

        if self.timeout_ms is None:
            object.__setattr__(self, "timeout_ms", DEFAULT_TIMEOUT_MS)
        elif isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, (int, float)):
            raise ValueError(
                f"{BAD_CONFIG}: timeout_ms must be a number, got {type(self.timeout_ms).__name__}"
            )
        elif self.timeout_ms <= 0:
            raise ValueError(
                f"{BAD_CONFIG}: timeout_ms must be positive, got {self.timeout_ms}"
            )

        headers = {str(k): str(v) for k, v in dict(self.headers or {}).items()}
        object.__setattr__(self, "headers", MappingProxyType(headers))

    @property
    def timeout_s(self) -> float:
        """Timeout in seconds, as expected by httpx and asyncio."""
        return self.timeout_ms / 1000.0

    def endpoint(self, path: str) -> str:
        """Absolute URL for an endpoint path such as "/invoke"."""
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.url}{path}"

    def request_headers(self) -> dict:
        """JSON content type merged with the configured headers (configured win)."""
        return {"Content-Type": "application/json", **self.headers}

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ClientConfig":
        """
        Build a config from environment variables.

        Raises:
            ValueError: when the URL is missing or a value cannot be parsed.
        """
        env = os.environ if environ is None else environ

        url = env.get(f"{prefix}URL")
        if not url:
            raise ValueError(f"{BAD_CONFIG}: {prefix}URL is not set")

        raw_timeout = env.get(f"{prefix}TIMEOUT_MS")
        timeout_ms: Any = DEFAULT_TIMEOUT_MS
        if raw_timeout is not None and raw_timeout.strip():
            try:
                timeout_ms = int(raw_timeout.strip())
            except ValueError as exc:
                raise ValueError(
                    f"{BAD_CONFIG}: {prefix}TIMEOUT_MS must be an integer, got {raw_timeout!r}"
                ) from exc

        raw_headers = env.get(f"{prefix}HEADERS")
        headers: Mapping[str, Any] = {}
        if raw_headers is not None and raw_headers.strip():
            try:
                headers = json.loads(raw_headers)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{BAD_CONFIG}: {prefix}HEADERS is not valid JSON") from exc
            if not isinstance(headers, Mapping):
                raise ValueError(f"{BAD_CONFIG}: {prefix}HEADERS must be a JSON object")

        return cls(url=url, timeout_ms=timeout_ms, headers=headers)


__all__ = [
    "DEFAULT_TIMEOUT_MS",
    "ENV_PREFIX",
    "BAD_CONFIG",
    "ClientConfig",
]
