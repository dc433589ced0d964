# remote_runnable/log_stream.py
# SPDX-License-Identifier: Apache-2.0

"""
Event-log conversion for `/stream_log`.

The server streams one JSON object per SSE data message:

    data: {"ops": [{"op": "replace", "path": "", "value": {...}}]}

Each object is revived (so values inside the ops come back as typed
LangChain objects) and wrapped in a `RunLogPatch`. Callers that want full
snapshots fold the patches with `accumulate_run_log`.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable, AsyncIterator, Mapping

from langchain_core.tracers.log_stream import RunLog, RunLogPatch

from remote_runnable.errors import ProtocolViolation
from remote_runnable.serde import loads
from remote_runnable.sse import aiter_event_data, aiter_sse

logger = logging.getLogger(__name__)


def decode_log_patch(data: str) -> RunLogPatch:
    """
    Decode one event payload into a `RunLogPatch`.

    Raises:
        ProtocolViolation: if the payload is not JSON or has no `ops` list.
    """
    payload: Any = loads(data)
    if not isinstance(payload, Mapping):
        raise ProtocolViolation(
            f"Invalid log patch from remote runnable: expected an object, got {type(payload).__name__}"
        )
    ops = payload.get("ops")
    if not isinstance(ops, list):
        raise ProtocolViolation("Invalid log patch from remote runnable: missing 'ops' list")
    return RunLogPatch(*ops)


async def aiter_log_patches(chunks: AsyncIterable[bytes]) -> AsyncIterator[RunLogPatch]:
    """Body byte chunks to `RunLogPatch` values, in arrival order."""
    async for data in aiter_event_data(aiter_sse(chunks)):
        yield decode_log_patch(data)


async def accumulate_run_log(patches: AsyncIterable[RunLogPatch]) -> AsyncIterator[RunLog]:
    """Fold patches into cumulative `RunLog` states, one per patch."""
    state = RunLog(state=None)
    async for patch in patches:
        state = state + patch
        yield state


__all__ = [
    "decode_log_patch",
    "aiter_log_patches",
    "accumulate_run_log",
]
