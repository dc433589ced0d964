# remote_runnable/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""
Remote Runnable Client - Public API

This module provides the public interface for calling runnables hosted
behind an HTTP endpoint. All public types are re-exported here for clean
imports.
"""

from remote_runnable.client import RemoteRunnable
from remote_runnable.config import (
    DEFAULT_TIMEOUT_MS,
    ENV_PREFIX,
    ClientConfig,
)
from remote_runnable.core.error_context import (
    attach_context,
    get_context,
    has_context,
)
from remote_runnable.errors import (
    # Error types
    RemoteRunnableError,
    TransportError,
    TransientNetwork,
    DeadlineExceeded,
    RemoteCallError,
    ProtocolViolation,
    NotSupported,
    RemoteStreamError,
)
from remote_runnable.options import LogStreamFilters
from remote_runnable.serde import dumps, loads, revive

__version__ = "0.1.0"

__all__ = [
    # Client
    "RemoteRunnable",

    # Configuration
    "ClientConfig",
    "DEFAULT_TIMEOUT_MS",
    "ENV_PREFIX",
    "LogStreamFilters",

    # Error types
    "RemoteRunnableError",
    "TransportError",
    "TransientNetwork",
    "DeadlineExceeded",
    "RemoteCallError",
    "ProtocolViolation",
    "NotSupported",
    "RemoteStreamError",

    # Error context
    "attach_context",
    "get_context",
    "has_context",

    # Payload codec
    "dumps",
    "loads",
    "revive",

    "__version__",
]
