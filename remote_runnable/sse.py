# remote_runnable/sse.py
# SPDX-License-Identifier: Apache-2.0

"""
Incremental Server-Sent-Events parser.

The parser is a small state machine fed with raw body chunks as they arrive:

    bytes chunks --LineDecoder--> lines --MessageDecoder--> EventSourceMessage

- `LineDecoder` reassembles lines across chunk boundaries. `\\n`, `\\r\\n`
  and a lone `\\r` all terminate a line; a `\\r` that ends one chunk and a
  `\\n` that starts the next count as a single terminator.
- `MessageDecoder` groups `field: value` lines into messages at blank lines.
  One space after the colon is stripped, repeated `data` lines are joined
  with `\\n`, `retry` must be an integer, comment lines (leading `:`) and
  lines without a colon are ignored.
- `SSEDecoder` combines both. `flush()` is called at end of body: it emits a
  message still pending and discards an unterminated trailing line.

On top of the parser, `iter_event_data` / `aiter_event_data` apply the
remote runnable's stream control events:

    (no event) / data / message   -> yield the data payload
    metadata                      -> ignored
    end                           -> stop
    error                         -> raise RemoteStreamError

Nothing here buffers more than one partial line and one partial message, so
a consumer that stops pulling stops the reads beneath it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
)

from remote_runnable.errors import RemoteStreamError

logger = logging.getLogger(__name__)

_LINE_END = re.compile(rb"\r\n|\r|\n")

# Events that carry stream output.
DATA_EVENTS = frozenset({"", "data", "message"})


@dataclass(frozen=True)
class EventSourceMessage:
    """One dispatched SSE message."""

    data: str = ""
    event: str = ""
    id: str = ""
    retry: Optional[int] = None


# =============================================================================
# Parser
# =============================================================================


class LineDecoder:
    """Split a byte stream into lines, keeping partial lines between feeds."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._skip_lf = False

    def feed(self, chunk: bytes) -> List[bytes]:
        if self._skip_lf and chunk:
            if chunk[:1] == b"\n":
                chunk = chunk[1:]
            self._skip_lf = False
        if not chunk:
            return []

        # The retained buffer never holds a terminator, so scanning starts
        # at the new bytes.
        scan_from = len(self._buffer)
        self._buffer.extend(chunk)

        lines: List[bytes] = []
        start = 0
        for match in _LINE_END.finditer(self._buffer, scan_from):
            lines.append(bytes(self._buffer[start:match.start()]))
            start = match.end()
            if match.group() == b"\r" and start == len(self._buffer):
                self._skip_lf = True
        del self._buffer[:start]
        return lines

    def flush(self) -> Optional[bytes]:
        """Return (and forget) an unterminated trailing line, if any."""
        self._skip_lf = False
        if not self._buffer:
            return None
        rest = bytes(self._buffer)
        self._buffer.clear()
        return rest


class MessageDecoder:
    """Accumulate decoded lines into `EventSourceMessage` values."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._data: List[str] = []
        self._event = ""
        self._id = ""
        self._retry: Optional[int] = None
        self._dirty = False

    def decode_line(self, line: bytes) -> Optional[EventSourceMessage]:
        """
        Process one line.

        Returns the completed message on a blank line (or `None` when nothing
        was accumulated), and `None` for every other line.
        """
        if not line:
            return self.dispatch()

        text = line.decode("utf-8", errors="replace")
        field, sep, value = text.partition(":")
        if not sep or not field:
            return None
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            self._id = value
        elif field == "retry":
            if not value.isdigit():
                return None
            self._retry = int(value)
        else:
            return None
        self._dirty = True
        return None

    def dispatch(self) -> Optional[EventSourceMessage]:
        """Emit the pending message (if any) and start a new one."""
        if not self._dirty:
            return None
        message = EventSourceMessage(
            data="\n".join(self._data),
            event=self._event,
            id=self._id,
            retry=self._retry,
        )
        self._reset()
        return message


class SSEDecoder:
    """Bytes in, `EventSourceMessage` values out."""

    def __init__(self) -> None:
        self._lines = LineDecoder()
        self._messages = MessageDecoder()

    def feed(self, chunk: bytes) -> List[EventSourceMessage]:
        out: List[EventSourceMessage] = []
        for line in self._lines.feed(chunk):
            message = self._messages.decode_line(line)
            if message is not None:
                out.append(message)
        return out

    def flush(self) -> List[EventSourceMessage]:
        partial = self._lines.flush()
        if partial is not None:
            logger.debug("Discarding unterminated SSE line (%d bytes)", len(partial))
        message = self._messages.dispatch()
        return [message] if message is not None else []


def iter_sse(chunks: Iterable[bytes]) -> Iterator[EventSourceMessage]:
    """Parse a byte-chunk iterator into SSE messages."""
    decoder = SSEDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()


async def aiter_sse(chunks: AsyncIterable[bytes]) -> AsyncIterator[EventSourceMessage]:
    """Async variant of `iter_sse`."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for message in decoder.feed(chunk):
            yield message
    for message in decoder.flush():
        yield message


# =============================================================================
# Stream control
# =============================================================================


def stream_error(data: str) -> RemoteStreamError:
    """Build the exception for an `error` event payload."""
    payload: Any = None
    if data:
        try:
            payload = json.loads(data)
        except ValueError:
            payload = None

    if isinstance(payload, Mapping):
        message = payload.get("message") or data
        status = payload.get("status_code")
        return RemoteStreamError(
            f"Remote stream failed: {message}",
            status_code=status if isinstance(status, int) else None,
            details=dict(payload),
        )
    return RemoteStreamError(f"Remote stream failed: {data or 'unknown error'}")


def _control(message: EventSourceMessage) -> Optional[bool]:
    """
    Classify one message.

    Returns True when its data should be yielded, False to skip it and None
    when the stream has ended. Raises on `error` events.
    """
    event = message.event
    if event in DATA_EVENTS:
        return bool(message.data)
    if event == "end":
        logger.debug("Received end event")
        return None
    if event == "error":
        raise stream_error(message.data)
    if event != "metadata":
        logger.debug("Ignoring unknown SSE event %r", event)
    return False


def iter_event_data(messages: Iterable[EventSourceMessage]) -> Iterator[str]:
    """Yield data payloads until an `end` event."""
    for message in messages:
        verdict = _control(message)
        if verdict is None:
            return
        if verdict:
            yield message.data
    logger.warning("Event stream closed without an end event")


async def aiter_event_data(
    messages: AsyncIterable[EventSourceMessage],
) -> AsyncIterator[str]:
    """Async variant of `iter_event_data`."""
    async for message in messages:
        verdict = _control(message)
        if verdict is None:
            return
        if verdict:
            yield message.data
    logger.warning("Event stream closed without an end event")


__all__ = [
    "DATA_EVENTS",
    "EventSourceMessage",
    "LineDecoder",
    "MessageDecoder",
    "SSEDecoder",
    "iter_sse",
    "aiter_sse",
    "stream_error",
    "iter_event_data",
    "aiter_event_data",
]
