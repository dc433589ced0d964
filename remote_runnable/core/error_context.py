# remote_runnable/core/error_context.py
# SPDX-License-Identifier: Apache-2.0

"""
Error context utilities for the remote runnable client.

Exceptions raised while talking to a remote runnable are enriched with
debugging metadata (operation, endpoint path, HTTP status, ...) as they
propagate out of the client. The context is stored as exception attributes
rather than in the message, so the original exception type and message are
preserved for callers while observability code can still read:

    except Exception as exc:
        context = get_context(exc)
        logger.error(
            "Remote call failed",
            extra={
                "operation": context.get("operation"),
                "path": context.get("path"),
                "status_code": context.get("status_code"),
            },
        )

Two attributes are set:

- `__remote_context__` (canonical), shared by every component.
- `__<component>_context__` (e.g. `__transport_context__`,
  `__remote_runnable_context__`) for discoverability in debuggers.

Multiple calls merge contexts, so the transport and the client can each
contribute their own keys.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping, Optional

logger = logging.getLogger(__name__)

_CANONICAL_ATTR = "__remote_context__"


def attach_context(
    exc: BaseException,
    component: str,
    **context: Any,
) -> None:
    """
    Attach debugging context to an exception.

    Parameters
    ----------
    exc:
        The exception to enrich. Its message, type and traceback are left
        untouched.

    component:
        Origin of the context ("remote_runnable", "transport", "sse", ...).
        Stored under the `component` key unless an earlier layer set it, and
        used to build the component-specific attribute name.

    **context:
        Arbitrary keys. Common ones:
            - operation: "invoke", "batch", "stream", "stream_log"
            - path: endpoint path ("/invoke", ...)
            - status_code: HTTP status when a response exists
            - batch_size: number of inputs for /batch

        Never include request bodies or header values.

    Attachment failures are logged at debug level and never mask the
    original exception.
    """
    try:
        merged_context: MutableMapping[str, Any] = {}

        existing = getattr(exc, _CANONICAL_ATTR, None)
        if isinstance(existing, Mapping):
            merged_context.update(existing)

        merged_context.setdefault("component", component)
        merged_context.update(context)

        setattr(exc, _CANONICAL_ATTR, merged_context)
        setattr(exc, f"__{component}_context__", merged_context)

    except Exception as attachment_error:  # noqa: BLE001
        # Context attachment must not interfere with exception propagation.
        logger.debug(
            "Failed to attach error context to %s: %s",
            type(exc).__name__,
            attachment_error,
            extra={"component": component},
        )


def get_context(
    exc: BaseException,
    *,
    component: Optional[str] = None,
) -> Mapping[str, Any]:
    """
    Retrieve attached context from an exception.

    If `component` is given, the component-specific attribute is tried first,
    then the canonical one. Returns an empty dict when nothing is attached.
    """
    if component:
        ctx = getattr(exc, f"__{component}_context__", None)
        if isinstance(ctx, Mapping):
            return ctx

    ctx = getattr(exc, _CANONICAL_ATTR, None)
    if isinstance(ctx, Mapping):
        return ctx
    return {}


def has_context(
    exc: BaseException,
    *,
    component: Optional[str] = None,
) -> bool:
    """True if the exception carries non-empty context."""
    return len(get_context(exc, component=component)) > 0


__all__ = [
    "attach_context",
    "get_context",
    "has_context",
]
