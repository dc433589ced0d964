# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures for the remote runnable tests.

- `RecordingHandler` wraps a responder function for `httpx.MockTransport`
  and records every request it sees (the transport spy).
- `ChunkedStream` serves a response body in caller-chosen byte chunks, for
  both sync and async clients, and records whether it was closed.
- `CallbackRecorder` is a LangChain callback handler recording chain events.
- `make_remote` builds a `RemoteRunnable` wired to injected mock clients.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import httpx
import pytest
from langchain_core.callbacks import BaseCallbackHandler

from remote_runnable import RemoteRunnable

BASE_URL = "http://host/api/"

Responder = Callable[[httpx.Request], httpx.Response]


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------


class RecordingHandler:
    """MockTransport handler that records requests before responding."""

    def __init__(self, responder: Responder) -> None:
        self._responder = responder
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def body(self, index: int = -1) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


class ChunkedStream(httpx.SyncByteStream, httpx.AsyncByteStream):
    """Response body delivered in fixed chunks."""

    def __init__(self, chunks: Iterable[Union[str, bytes]]) -> None:
        self._chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
        self.closed = False

    def __iter__(self) -> Iterator[bytes]:
        yield from self._chunks

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk

    def close(self) -> None:
        self.closed = True

    async def aclose(self) -> None:
        self.closed = True


def sse_event(data: Any = None, event: Optional[str] = None) -> str:
    """Render one SSE message with a JSON-encoded `data` field."""
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    if data is not None:
        lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


def sse_response(*chunks: Union[str, bytes], status_code: int = 200) -> Tuple[httpx.Response, ChunkedStream]:
    stream = ChunkedStream(chunks)
    response = httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        stream=stream,
    )
    return response, stream


# ---------------------------------------------------------------------------
# Callback helpers
# ---------------------------------------------------------------------------


class CallbackRecorder(BaseCallbackHandler):
    """Records chain lifecycle events."""

    def __init__(self) -> None:
        self.starts: List[Any] = []
        self.ends: List[Any] = []
        self.errors: List[BaseException] = []

    def on_chain_start(self, serialized: Any, inputs: Any, **kwargs: Any) -> None:
        self.starts.append(inputs)

    def on_chain_end(self, outputs: Any, **kwargs: Any) -> None:
        self.ends.append(outputs)

    def on_chain_error(self, error: BaseException, **kwargs: Any) -> None:
        self.errors.append(error)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_remote() -> Callable[..., Tuple[RemoteRunnable, RecordingHandler]]:
    """
    Factory: `make_remote(responder, url=BASE_URL, **kwargs)` returns
    `(remote, spy)` where both sync and async clients route to `responder`.
    """

    def _make(
        responder: Responder,
        url: str = BASE_URL,
        **kwargs: Any,
    ) -> Tuple[RemoteRunnable, RecordingHandler]:
        spy = RecordingHandler(responder)
        transport = httpx.MockTransport(spy)
        remote = RemoteRunnable(
            url,
            client=httpx.Client(transport=transport),
            async_client=httpx.AsyncClient(transport=transport),
            **kwargs,
        )
        return remote, spy

    return _make


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()
