# remote_runnable/errors.py
# SPDX-License-Identifier: Apache-2.0
"""
Normalized error taxonomy for the remote runnable client.

Every failure surfaced by the client is a subclass of `RemoteRunnableError`,
so callers can branch on machine-readable codes instead of parsing messages.

Taxonomy
--------
- TransportError
    * TransientNetwork   - connection failures (DNS, refused, reset)
    * DeadlineExceeded   - the request timeout fired
    * RemoteCallError    - the server answered with a non-2xx status
- ProtocolViolation      - well-formed HTTP, malformed payload
- NotSupported           - the caller asked for a mode the remote cannot do
- RemoteStreamError      - the server reported an error inside an event stream

No retries are performed anywhere in the client. `retry_after_ms` is a hint
for the caller's own retry policy.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx


class RemoteRunnableError(Exception):
    """
    Base exception for all remote runnable client errors.

    Attributes:
        message:
            Human-readable description (safe for logs).
        code:
            Upper-snake-case machine code.
        status_code:
            HTTP status when the error came from a response.
        retry_after_ms:
            Optional backoff hint parsed from the server.
        details:
            Additional JSON-safe context (never secrets).
        response:
            The raw `httpx.Response`, when one exists, for caller inspection.
    """

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after_ms: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
        response: Optional[httpx.Response] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        self.details = dict(details or {})
        self.response = response

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.code:
            base += f" [code={self.code}]"
        if self.retry_after_ms is not None:
            base += f" retry_after_ms={self.retry_after_ms}"
        if self.details:
            base += f" details={self.details}"
        return base


class TransportError(RemoteRunnableError):
    """Network-level failure or non-OK HTTP status."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "TRANSPORT_ERROR")
        super().__init__(message, **kwargs)


class TransientNetwork(TransportError):
    """
    Connection could not be established or was dropped.

    Retryable from the caller's point of view.
    """

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "TRANSIENT_NETWORK")
        super().__init__(message, **kwargs)


class DeadlineExceeded(TransportError):
    """
    The request exceeded the client's timeout budget.

    Emitted when:
        - httpx reports a connect/read/write/pool timeout.
        - A streaming body is still being read when the deadline expires.
    """

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "DEADLINE_EXCEEDED")
        super().__init__(message, **kwargs)


class RemoteCallError(TransportError):
    """
    The server answered with a non-2xx status.

    `code` is derived from the status (see `code_for_status`), the server's
    message is kept in `message`, and the raw response in `response`.
    """

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "HTTP_ERROR")
        super().__init__(message, **kwargs)


class ProtocolViolation(RemoteRunnableError):
    """
    Well-formed HTTP response that does not follow the wire contract.

    Examples:
        - /batch body without an `output` field
        - streaming response without a body
        - event payload that is not valid JSON
    """

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "PROTOCOL_VIOLATION")
        super().__init__(message, **kwargs)


class NotSupported(RemoteRunnableError):
    """Requested mode is not available over the remote transport."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "NOT_SUPPORTED")
        super().__init__(message, **kwargs)


class RemoteStreamError(RemoteRunnableError):
    """The server emitted an `error` event in the middle of a stream."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("code", "STREAM_ERROR")
        super().__init__(message, **kwargs)


# =============================================================================
# Response normalization
# =============================================================================

_STATUS_CODES: Mapping[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    403: "AUTH_ERROR",
    404: "NOT_FOUND",
    408: "DEADLINE_EXCEEDED",
    413: "BAD_REQUEST",
    422: "BAD_REQUEST",
    429: "RESOURCE_EXHAUSTED",
}


def code_for_status(status_code: int) -> str:
    """Map an HTTP status to the taxonomy's machine code."""
    if status_code in _STATUS_CODES:
        return _STATUS_CODES[status_code]
    if status_code >= 500:
        return "UNAVAILABLE"
    return "HTTP_ERROR"


def _retry_after_ms(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(0, int(float(raw) * 1000))
    except ValueError:
        # HTTP-date form is not interpreted.
        return None


def server_message(response: httpx.Response) -> str:
    """
    Extract the server-supplied error message from an already-read response.

    Looks for `message`, then `detail` (FastAPI style), in a JSON body and
    falls back to the raw text.
    """
    try:
        body = response.json()
    except (ValueError, json.JSONDecodeError):
        return response.text.strip()
    if isinstance(body, Mapping):
        for key in ("message", "detail"):
            value = body.get(key)
            if value is not None:
                return value if isinstance(value, str) else json.dumps(value)
    return response.text.strip()


def error_from_response(response: httpx.Response) -> RemoteCallError:
    """
    Build a `RemoteCallError` from a non-2xx response.

    The response body must already be read (`read()` / `aread()`).
    """
    status = response.status_code
    message = server_message(response)
    return RemoteCallError(
        f"RemoteRunnable call failed with status code {status}: {message}",
        code=code_for_status(status),
        status_code=status,
        retry_after_ms=_retry_after_ms(response),
        details={"server_message": message} if message else None,
        response=response,
    )


__all__ = [
    "RemoteRunnableError",
    "TransportError",
    "TransientNetwork",
    "DeadlineExceeded",
    "RemoteCallError",
    "ProtocolViolation",
    "NotSupported",
    "RemoteStreamError",
    "code_for_status",
    "server_message",
    "error_from_response",
]
