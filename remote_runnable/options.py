# remote_runnable/options.py
# SPDX-License-Identifier: Apache-2.0

"""
Call-option shaping for the remote runnable client.

Callers hand the client one merged bag of options: the standard
`RunnableConfig` keys (tags, metadata, callbacks, ...) mixed with arbitrary
extension fields. Before anything reaches the wire this module:

- splits the bag into a `config` part and an opaque `extras` part,
- removes the execution callbacks (they are local observers, never sent),
- appends the log-capturing callback for `astream_log` without touching the
  caller's own callback list or manager,
- translates log-stream filter options into the wire's field names.

All helpers are pure: they return new mappings and never mutate their inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from langchain_core.callbacks import BaseCallbackHandler, BaseCallbackManager
from langchain_core.runnables import RunnableConfig

#: Keys recognized as transport/execution configuration.
CONFIG_KEYS = frozenset(RunnableConfig.__annotations__)


def split_call_options(
    options: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> Tuple[RunnableConfig, Dict[str, Any]]:
    """
    Separate merged call options into `(config, extras)`.

    `options` and `kwargs` are merged first (kwargs win), so both
    `invoke(x, {"tags": ["a"]})` and `invoke(x, tags=["a"])` land in config.
    Neither input is mutated.
    """
    merged: Dict[str, Any] = {**(options or {}), **kwargs}
    config: Dict[str, Any] = {}
    extras: Dict[str, Any] = {}
    for key, value in merged.items():
        if key in CONFIG_KEYS:
            config[key] = value
        else:
            extras[key] = value
    return config, extras  # type: ignore[return-value]


def strip_callbacks(config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy of `config` without the `callbacks` field."""
    rest = dict(config or {})
    rest.pop("callbacks", None)
    return rest


def append_callback(
    config: Optional[Mapping[str, Any]],
    handler: BaseCallbackHandler,
) -> RunnableConfig:
    """
    Return a new config whose callbacks also include `handler`.

    - no callbacks:        `[handler]`
    - list of handlers:    a new list with `handler` appended
    - callback manager:    `manager.copy()` with `handler` added to the
                           copy as an inheritable handler

    The caller's list or manager is never mutated.
    """
    merged: Dict[str, Any] = dict(config or {})
    callbacks = merged.get("callbacks")
    if callbacks is None:
        merged["callbacks"] = [handler]
    elif isinstance(callbacks, BaseCallbackManager):
        copied = callbacks.copy()
        copied.add_handler(handler, inherit=True)
        merged["callbacks"] = copied
    elif isinstance(callbacks, Sequence):
        merged["callbacks"] = [*callbacks, handler]
    else:
        raise TypeError(
            "callbacks must be a list of handlers or a callback manager, "
            f"got {type(callbacks).__name__}"
        )
    return merged  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Log stream filters
# ---------------------------------------------------------------------------

# caller-facing camelCase name -> wire (snake_case) name
_FILTER_ALIASES: Mapping[str, str] = {
    "includeNames": "include_names",
    "includeTypes": "include_types",
    "includeTags": "include_tags",
    "excludeNames": "exclude_names",
    "excludeTypes": "exclude_types",
    "excludeTags": "exclude_tags",
}

_FILTER_FIELDS: Tuple[str, ...] = tuple(_FILTER_ALIASES.values())


@dataclass(frozen=True)
class LogStreamFilters:
    """
    Include/exclude filters for `astream_log`.

    Each filter is a sequence of run names, run types or tags; `None` means
    "not set" and is omitted from the request body.
    """

    include_names: Optional[Sequence[str]] = None
    include_types: Optional[Sequence[str]] = None
    include_tags: Optional[Sequence[str]] = None
    exclude_names: Optional[Sequence[str]] = None
    exclude_types: Optional[Sequence[str]] = None
    exclude_tags: Optional[Sequence[str]] = None

    @classmethod
    def from_options(
        cls,
        options: Optional[Mapping[str, Any]] = None,
        **overrides: Optional[Sequence[str]],
    ) -> "LogStreamFilters":
        """
        Build filters from a caller-facing options mapping.

        Accepts camelCase (`includeNames`) and snake_case (`include_names`)
        keys; non-None `overrides` win. Unknown keys raise `TypeError`.
        """
        values: Dict[str, Any] = {}
        for key, value in (options or {}).items():
            name = _FILTER_ALIASES.get(key, key)
            if name not in _FILTER_FIELDS:
                raise TypeError(f"unknown log stream option: {key!r}")
            values[name] = value
        for name, value in overrides.items():
            if value is not None:
                values[name] = value
        return cls(**values)

    def to_wire(self) -> Dict[str, Any]:
        """Filters under their wire field names, unset ones omitted."""
        wire: Dict[str, Any] = {}
        for name in _FILTER_FIELDS:
            value = getattr(self, name)
            if value is not None:
                wire[name] = list(value)
        return wire

    def handler_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the local `LogStreamCallbackHandler`."""
        return {name: getattr(self, name) for name in _FILTER_FIELDS}


__all__ = [
    "CONFIG_KEYS",
    "split_call_options",
    "strip_callbacks",
    "append_callback",
    "LogStreamFilters",
]
