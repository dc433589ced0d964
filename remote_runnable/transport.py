# remote_runnable/transport.py
# SPDX-License-Identifier: Apache-2.0

"""
HTTP transport for the remote runnable client, built on httpx.

Responsibilities
----------------
- Encode request bodies with the payload codec and POST them to
  `config.url + path` with `Content-Type: application/json` merged with the
  configured headers.
- Bound every request by the configured timeout. httpx enforces it per
  network operation; `Deadline` enforces it for the request as a whole,
  including every chunk read of a streaming body.
- Normalize httpx failures into the client's error taxonomy:

      httpx.TimeoutException / expired deadline  -> DeadlineExceeded
      other httpx.TransportError                 -> TransientNetwork

Status codes are not inspected here; callers decide what a non-2xx means.

Connection ownership
--------------------
When no client is injected, each call opens its own `httpx.Client` /
`httpx.AsyncClient` and closes it when the call (or the stream) finishes, so
concurrent operations never share a connection. Injected clients are used
as-is and never closed; their lifetime belongs to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AsyncExitStack, ExitStack, asynccontextmanager, contextmanager
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Optional,
    Tuple,
    TypeVar,
)

import httpx

from remote_runnable.config import ClientConfig
from remote_runnable.errors import DeadlineExceeded, TransientNetwork
from remote_runnable.serde import dumps

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Deadline
# =============================================================================


class Deadline:
    """
    Absolute expiry for one request, derived from its timeout.

    Behavior:
        - `check()` raises DeadlineExceeded once expired.
        - On the sync path the budget is checked as each chunk arrives. A
          read that blocks without data is cut off by httpx's own read
          timeout (the same `timeout_ms`), so a silent server is detected
          within at most twice the timeout. The async path cancels the
          pending read as soon as the budget runs out.
        - `wrap()` bounds an awaitable by the remaining budget via
          asyncio.wait_for.
        - `iter_within()` / `aiter_within()` bound each chunk read of a
          streaming body.
    """

    def __init__(
        self,
        timeout_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self.timeout_s = timeout_s
        self.expires_at = clock() + timeout_s

    def remaining_s(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining_s() <= 0.0

    def _exceeded(self) -> DeadlineExceeded:
        return DeadlineExceeded(
            "deadline exceeded",
            details={"timeout_ms": int(self.timeout_s * 1000), "remaining_ms": 0},
        )

    def check(self) -> None:
        if self.expired:
            raise self._exceeded()

    async def wrap(self, awaitable: Awaitable[T]) -> T:
        remaining = self.remaining_s()
        if remaining <= 0.0:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise self._exceeded()
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise self._exceeded() from e

    def iter_within(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        for chunk in chunks:
            self.check()
            yield chunk

    async def aiter_within(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        iterator = chunks.__aiter__()

        async def _next() -> bytes:
            return await iterator.__anext__()

        while True:
            try:
                chunk = await self.wrap(_next())
            except StopAsyncIteration:
                return
            yield chunk


# =============================================================================
# Error normalization
# =============================================================================


@contextmanager
def _httpx_errors(path: str) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        raise DeadlineExceeded(
            f"Request to {path} timed out",
            details={"path": path, "cause": type(exc).__name__},
        ) from exc
    except httpx.TransportError as exc:
        raise TransientNetwork(
            f"Request to {path} failed: {exc}",
            details={"path": path, "cause": type(exc).__name__},
        ) from exc


# =============================================================================
# Transport
# =============================================================================


class RemoteTransport:
    """POST JSON bodies to a remote runnable's endpoints."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = client
        self._async_client = async_client

    def _request(self, path: str, body: Any) -> Dict[str, Any]:
        return {
            "url": self.config.endpoint(path),
            "content": dumps(body),
            "headers": self.config.request_headers(),
            "timeout": httpx.Timeout(self.config.timeout_s),
        }

    # ------------------------------------------------------------------ #
    # Buffered requests
    # ------------------------------------------------------------------ #

    def post(self, path: str, body: Any) -> httpx.Response:
        """
        POST and return the fully read response.

        The body is read chunk by chunk under the request's `Deadline`, so a
        server that trickles its reply fails with DeadlineExceeded instead of
        outliving the timeout.
        """
        with self.stream_post(path, body) as (response, deadline):
            raw = b"".join(deadline.iter_within(response.iter_raw()))
            # Raw bytes plus the original headers: content decoding still applies.
            return httpx.Response(
                response.status_code,
                headers=response.headers,
                content=raw,
                request=response.request,
            )

    async def apost(self, path: str, body: Any) -> httpx.Response:
        """Async `post`, additionally bounded by a total deadline."""
        request = self._request(path, body)
        deadline = Deadline(self.config.timeout_s)
        logger.debug("POST %s", request["url"])
        with _httpx_errors(path):
            if self._async_client is not None:
                return await deadline.wrap(self._async_client.post(**request))
            async with httpx.AsyncClient() as client:
                return await deadline.wrap(client.post(**request))

    # ------------------------------------------------------------------ #
    # Streaming requests
    # ------------------------------------------------------------------ #

    @contextmanager
    def stream_post(self, path: str, body: Any) -> Iterator[Tuple[httpx.Response, Deadline]]:
        """
        POST and yield `(response, deadline)` with the body still unread.

        httpx failures while the body is read inside the `with` block are
        normalized as well. The response (and an owned client) is closed on
        exit.
        """
        request = self._request(path, body)
        deadline = Deadline(self.config.timeout_s)
        logger.debug("POST %s", request["url"])
        with _httpx_errors(path), ExitStack() as stack:
            client = self._client
            if client is None:
                client = stack.enter_context(httpx.Client())
            response = stack.enter_context(client.stream("POST", **request))
            yield response, deadline

    @asynccontextmanager
    async def astream_post(
        self, path: str, body: Any
    ) -> AsyncIterator[Tuple[httpx.Response, Deadline]]:
        """Async variant of `stream_post`."""
        request = self._request(path, body)
        deadline = Deadline(self.config.timeout_s)
        logger.debug("POST %s", request["url"])
        with _httpx_errors(path):
            async with AsyncExitStack() as stack:
                client = self._async_client
                if client is None:
                    client = await stack.enter_async_context(httpx.AsyncClient())
                response = await stack.enter_async_context(client.stream("POST", **request))
                yield response, deadline


__all__ = [
    "Deadline",
    "RemoteTransport",
]
