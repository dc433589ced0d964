# SPDX-License-Identifier: Apache-2.0
"""
RemoteRunnable stream / astream.
Asserts:
  • Two data messages then an end event yield exactly two revived chunks
  • Non-2xx responses raise with status, server message and raw response
  • A body-less response cannot begin a stream
  • Server error events raise mid-stream; partial reads reassemble correctly
  • Stopping consumption closes the response; callbacks see the full output
"""

from __future__ import annotations

import httpx
import pytest
from langchain_core.messages import AIMessageChunk

from remote_runnable import (
    ProtocolViolation,
    RemoteCallError,
    RemoteStreamError,
    get_context,
)

from tests.conftest import CallbackRecorder, sse_event, sse_response


def _chunk(content: str) -> dict:
    return {"content": content, "type": "AIMessageChunk", "additional_kwargs": {}}


def _streaming(*chunks, status_code: int = 200):
    holder = {}

    def responder(request: httpx.Request) -> httpx.Response:
        response, stream = sse_response(*chunks, status_code=status_code)
        holder["stream"] = stream
        return response

    return responder, holder


def test_stream_yields_chunks_in_order_until_end(make_remote) -> None:
    responder, _ = _streaming(
        sse_event(_chunk("Hel"), event="data"),
        sse_event(_chunk("lo"), event="data"),
        sse_event(event="end"),
        sse_event(_chunk("ignored"), event="data"),
    )
    remote, spy = make_remote(responder)

    chunks = list(remote.stream({"q": 1}, {"tags": ["s"]}, mode="fast"))

    assert chunks == [AIMessageChunk(content="Hel"), AIMessageChunk(content="lo")]
    assert spy.calls == 1
    assert str(spy.requests[0].url) == "http://host/api/stream"
    assert spy.body() == {"input": {"q": 1}, "config": {"tags": ["s"]}, "kwargs": {"mode": "fast"}}


def test_stream_strips_callbacks_and_reports_accumulated_output(make_remote, recorder: CallbackRecorder) -> None:
    responder, _ = _streaming(
        sse_event(_chunk("Hel")),
        sse_event(_chunk("lo")),
        sse_event(event="end"),
    )
    remote, spy = make_remote(responder)

    list(remote.stream("q", {"callbacks": [recorder]}))

    assert "callbacks" not in spy.body()["config"]
    assert recorder.starts == ["q"]
    assert len(recorder.ends) == 1
    assert recorder.ends[0].content == "Hello"


def test_stream_handles_split_reads(make_remote) -> None:
    body = sse_event("alpha") + sse_event("beta") + sse_event(event="end")
    raw = body.encode()
    responder, _ = _streaming(*[raw[i:i + 3] for i in range(0, len(raw), 3)])
    remote, _ = make_remote(responder)

    assert list(remote.stream("q")) == ["alpha", "beta"]


def test_stream_http_error_raises_before_any_element(make_remote, recorder) -> None:
    remote, _ = make_remote(lambda request: httpx.Response(500, json={"message": "boom"}))

    stream = remote.stream("q", {"callbacks": [recorder]})
    with pytest.raises(RemoteCallError) as exc_info:
        next(stream)

    err = exc_info.value
    assert err.status_code == 500
    assert err.message == "RemoteRunnable call failed with status code 500: boom"
    assert isinstance(err.response, httpx.Response)
    assert err.response.status_code == 500
    assert get_context(err)["path"] == "/stream"
    assert recorder.errors == [err]


def test_stream_without_body_cannot_begin(make_remote) -> None:
    remote, _ = make_remote(lambda request: httpx.Response(204))
    with pytest.raises(ProtocolViolation) as exc_info:
        list(remote.stream("q"))
    assert "Could not begin remote stream" in exc_info.value.message


def test_stream_error_event_raises_after_earlier_chunks(make_remote) -> None:
    responder, _ = _streaming(
        sse_event("first"),
        sse_event({"status_code": 500, "message": "exploded"}, event="error"),
    )
    remote, _ = make_remote(responder)

    received = []
    with pytest.raises(RemoteStreamError) as exc_info:
        for chunk in remote.stream("q"):
            received.append(chunk)

    assert received == ["first"]
    assert exc_info.value.status_code == 500
    assert get_context(exc_info.value)["operation"] == "stream"


def test_stream_eof_without_end_still_finishes(make_remote) -> None:
    responder, _ = _streaming(sse_event(1), sse_event(2))
    remote, _ = make_remote(responder)
    assert list(remote.stream("q")) == [1, 2]


def test_stopping_consumption_closes_response(make_remote) -> None:
    responder, holder = _streaming(sse_event("a"), sse_event("b"), sse_event(event="end"))
    remote, _ = make_remote(responder)

    stream = remote.stream("q")
    assert next(stream) == "a"
    stream.close()

    assert holder["stream"].closed


# ---------------------------------------------------------------------------
# astream
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_astream_yields_chunks(make_remote, recorder: CallbackRecorder) -> None:
    responder, holder = _streaming(
        sse_event(_chunk("a"), event="data"),
        sse_event({"run_id": "r"}, event="metadata"),
        sse_event(_chunk("b"), event="data"),
        sse_event(event="end"),
    )
    remote, spy = make_remote(responder)

    chunks = [c async for c in remote.astream("q", {"callbacks": [recorder]})]

    assert chunks == [AIMessageChunk(content="a"), AIMessageChunk(content="b")]
    assert "callbacks" not in spy.body()["config"]
    assert recorder.ends[0].content == "ab"
    assert holder["stream"].closed


@pytest.mark.asyncio
async def test_astream_http_error(make_remote) -> None:
    remote, _ = make_remote(lambda request: httpx.Response(503, json={"message": "down"}))
    with pytest.raises(RemoteCallError) as exc_info:
        async for _ in remote.astream("q"):
            pass
    assert exc_info.value.code == "UNAVAILABLE"
    assert "down" in exc_info.value.message


@pytest.mark.asyncio
async def test_astream_without_body_cannot_begin(make_remote) -> None:
    remote, _ = make_remote(lambda request: httpx.Response(200, headers={"content-length": "0"}))
    with pytest.raises(ProtocolViolation):
        async for _ in remote.astream("q"):
            pass
