# remote_runnable/client.py
# SPDX-License-Identifier: Apache-2.0

"""
Remote runnable client.

`RemoteRunnable` is a `langchain_core` Runnable whose work happens on a
server: every call is shipped over HTTP to a hosted runnable and the
response is revived back into LangChain objects.

    remote = RemoteRunnable("http://localhost:8000/chain/")
    remote.invoke({"topic": "cats"})
    for chunk in remote.stream({"topic": "cats"}):
        ...
    async for patch in remote.astream_log({"topic": "cats"}):
        ...

Endpoints
---------
- POST /invoke      {input, config, kwargs}                  -> {output}
- POST /batch       {inputs, config: [...], kwargs: [...]}   -> {output: [...]}
- POST /stream      {input, config, kwargs}                  -> event stream
- POST /stream_log  {input, config, kwargs, <filters>,
                     diff: false}                            -> event stream

Call options
------------
Options passed as `config` and as keyword arguments are merged; keys known
to `RunnableConfig` become the wire `config`, everything else is sent as
`kwargs`. Callbacks never leave the process: they are stripped from the wire
config and receive the run's events locally.

Errors
------
Failures are raised as `RemoteRunnableError` subclasses (see
`remote_runnable.errors`) carrying debugging context attached with
`attach_context` (operation, endpoint path, HTTP status). Nothing is retried.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import httpx
from langchain_core.runnables import Runnable, RunnableConfig
from langchain_core.runnables.config import (
    ensure_config,
    get_async_callback_manager_for_config,
    get_callback_manager_for_config,
)
from langchain_core.runnables.utils import Input, Output
from langchain_core.tracers.log_stream import (
    LogStreamCallbackHandler,
    RunLog,
    RunLogPatch,
)

from remote_runnable.config import DEFAULT_TIMEOUT_MS, ENV_PREFIX, ClientConfig
from remote_runnable.core.error_context import attach_context
from remote_runnable.errors import (
    NotSupported,
    ProtocolViolation,
    error_from_response,
)
from remote_runnable.log_stream import accumulate_run_log, aiter_log_patches
from remote_runnable.options import (
    LogStreamFilters,
    append_callback,
    split_call_options,
    strip_callbacks,
)
from remote_runnable.serde import loads, revive
from remote_runnable.sse import aiter_event_data, aiter_sse, iter_event_data, iter_sse
from remote_runnable.transport import RemoteTransport

logger = logging.getLogger(__name__)

# Component identifier used for error context
_COMPONENT = "remote_runnable"

T = TypeVar("T")

_NO_BODY_STATUSES = frozenset({204, 205, 304})

_MISSING = object()


# ---------------------------------------------------------------------------
# Error context helpers
# ---------------------------------------------------------------------------


def _extract_dynamic_context(
    exc: BaseException,
    args: Tuple[Any, ...],
    operation: str,
) -> Dict[str, Any]:
    """
    Context computed on the error path only.

    Never includes request bodies or header values.
    """
    dynamic_ctx: Dict[str, Any] = {"operation": operation}
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        dynamic_ctx["status_code"] = status_code
    if operation in ("batch", "abatch") and args and isinstance(args[0], Sequence):
        dynamic_ctx["batch_size"] = len(args[0])
    if operation in ("stream", "astream", "astream_log"):
        dynamic_ctx["stream"] = True
    return dynamic_ctx


def _create_error_context_decorator(
    operation: str,
    path: str,
    is_async: bool = False,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorate a client method so raised exceptions carry call context."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if is_async:

            @wraps(func)
            async def async_wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
                try:
                    return await func(self, *args, **kwargs)
                except Exception as exc:  # noqa: BLE001
                    attach_context(
                        exc,
                        _COMPONENT,
                        path=path,
                        url=self.url,
                        **_extract_dynamic_context(exc, args, operation),
                    )
                    raise

            return async_wrapper

        @wraps(func)
        def sync_wrapper(self: Any, *args: Any, **kwargs: Any) -> T:
            try:
                return func(self, *args, **kwargs)
            except Exception as exc:  # noqa: BLE001
                attach_context(
                    exc,
                    _COMPONENT,
                    path=path,
                    url=self.url,
                    **_extract_dynamic_context(exc, args, operation),
                )
                raise

        return sync_wrapper

    return decorator


def with_remote_error_context(
    operation: str,
    path: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for sync client methods."""
    return _create_error_context_decorator(operation, path, is_async=False)


def with_async_remote_error_context(
    operation: str,
    path: str,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for async client methods."""
    return _create_error_context_decorator(operation, path, is_async=True)


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _json_body(response: httpx.Response) -> Mapping[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise ProtocolViolation(
            "Invalid response from remote runnable: body is not valid JSON",
            status_code=response.status_code,
        ) from exc
    if not isinstance(body, Mapping):
        raise ProtocolViolation(
            "Invalid response from remote runnable: expected a JSON object",
            status_code=response.status_code,
        )
    return body


def _has_no_body(response: httpx.Response) -> bool:
    if response.status_code in _NO_BODY_STATUSES:
        return True
    return response.headers.get("content-length", "").strip() == "0"


def _batch_output(body: Mapping[str, Any], expected: int) -> List[Any]:
    output = body.get("output")
    if not isinstance(output, list):
        raise ProtocolViolation("Invalid response from remote runnable: missing batch output")
    if len(output) != expected:
        raise ProtocolViolation(
            f"Invalid response from remote runnable: expected {expected} outputs, got {len(output)}",
            details={"expected": expected, "received": len(output)},
        )
    return revive(output)


def _accumulate(final: Any, chunk: Any) -> Any:
    if final is _MISSING:
        return chunk
    try:
        return final + chunk
    except TypeError:
        return chunk


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RemoteRunnable(Runnable[Input, Output]):
    """
    A Runnable executed by a remote server.

    Args:
        url:
            Base URL of the hosted runnable (a trailing slash is removed).
        timeout_ms:
            Timeout for every request, in milliseconds. Streams are bounded
            by the same budget from request start.
        headers:
            Static headers sent with every request (e.g. authorization).
        client / async_client:
            Optional httpx clients to reuse. They are never closed by this
            class. When omitted, each call uses its own short-lived client.
        name:
            Optional run name reported to local callbacks.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
        name: Optional[str] = None,
    ) -> None:
        self.config = ClientConfig(url=url, timeout_ms=timeout_ms, headers=headers or {})
        self._transport = RemoteTransport(self.config, client=client, async_client=async_client)
        self.name = name

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
        name: Optional[str] = None,
    ) -> "RemoteRunnable":
        return cls(
            config.url,
            timeout_ms=config.timeout_ms,
            headers=config.headers,
            client=client,
            async_client=async_client,
            name=name,
        )

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        *,
        environ: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.Client] = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> "RemoteRunnable":
        """Build a client from `<prefix>URL`, `<prefix>TIMEOUT_MS` and `<prefix>HEADERS`."""
        return cls.from_config(
            ClientConfig.from_env(prefix, environ=environ),
            client=client,
            async_client=async_client,
        )

    @property
    def url(self) -> str:
        return self.config.url

    @property
    def InputType(self) -> Any:  # noqa: N802
        return Any

    @property
    def OutputType(self) -> Any:  # noqa: N802
        return Any

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r})"

    def _check_response(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise error_from_response(response)

    # ------------------------------------------------------------------ #
    # invoke
    # ------------------------------------------------------------------ #

    @with_remote_error_context("invoke", "/invoke")
    def _invoke(
        self,
        input: Input,
        *,
        wire_config: Dict[str, Any],
        extras: Dict[str, Any],
    ) -> Output:
        response = self._transport.post(
            "/invoke",
            {"input": input, "config": wire_config, "kwargs": extras},
        )
        self._check_response(response)
        return revive(_json_body(response).get("output"))

    def invoke(
        self,
        input: Input,
        config: Optional[RunnableConfig] = None,
        **kwargs: Any,
    ) -> Output:
        local, extras = split_call_options(config, **kwargs)
        return self._call_with_config(
            self._invoke,
            input,
            local,
            wire_config=strip_callbacks(local),
            extras=extras,
        )

    @with_async_remote_error_context("ainvoke", "/invoke")
    async def _ainvoke(
        self,
        input: Input,
        *,
        wire_config: Dict[str, Any],
        extras: Dict[str, Any],
    ) -> Output:
        response = await self._transport.apost(
            "/invoke",
            {"input": input, "config": wire_config, "kwargs": extras},
        )
        self._check_response(response)
        return revive(_json_body(response).get("output"))

    async def ainvoke(
        self,
        input: Input,
        config: Optional[RunnableConfig] = None,
        **kwargs: Any,
    ) -> Output:
        local, extras = split_call_options(config, **kwargs)
        return await self._acall_with_config(
            self._ainvoke,
            input,
            local,
            wire_config=strip_callbacks(local),
            extras=extras,
        )

    # ------------------------------------------------------------------ #
    # batch
    # ------------------------------------------------------------------ #

    @staticmethod
    def _batch_options(
        return_exceptions: bool,
        batch_options: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        options = dict(batch_options or {})
        requested = bool(options.pop("return_exceptions", False))
        if return_exceptions or requested:
            raise NotSupported("return_exceptions is not supported for remote clients")
        return options

    @staticmethod
    def _split_batch(
        size: int,
        config: Optional[Union[RunnableConfig, Sequence[RunnableConfig]]],
        batch_options: Mapping[str, Any],
        kwargs: Mapping[str, Any],
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Per-input (local configs, wire configs, extras)."""
        if isinstance(config, Sequence) and not isinstance(config, Mapping):
            if len(config) != size:
                raise ValueError(
                    f"config must be a list of the same length as inputs, "
                    f"but got {len(config)} configs for {size} inputs"
                )
            per_input = list(config)
        else:
            per_input = [config] * size

        local_configs: List[Dict[str, Any]] = []
        wire_configs: List[Dict[str, Any]] = []
        extras: List[Dict[str, Any]] = []
        for options in per_input:
            local, extra = split_call_options(options, **kwargs)
            local_configs.append(dict(local))
            wire_configs.append({**strip_callbacks(local), **batch_options})
            extras.append(extra)
        return local_configs, wire_configs, extras

    @with_remote_error_context("batch", "/batch")
    def _batch(
        self,
        inputs: List[Input],
        *,
        wire_configs: List[Dict[str, Any]],
        extras: List[Dict[str, Any]],
    ) -> List[Output]:
        response = self._transport.post(
            "/batch",
            {"inputs": inputs, "config": wire_configs, "kwargs": extras},
        )
        self._check_response(response)
        return _batch_output(_json_body(response), len(inputs))

    def batch(
        self,
        inputs: List[Input],
        config: Optional[Union[RunnableConfig, List[RunnableConfig]]] = None,
        *,
        return_exceptions: bool = False,
        batch_options: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> List[Output]:
        options = self._batch_options(return_exceptions, batch_options)
        if not inputs:
            return []
        local_configs, wire_configs, extras = self._split_batch(
            len(inputs), config, options, kwargs
        )
        return self._batch_with_config(
            self._batch,
            list(inputs),
            local_configs,
            wire_configs=wire_configs,
            extras=extras,
        )

    @with_async_remote_error_context("abatch", "/batch")
    async def _abatch(
        self,
        inputs: List[Input],
        *,
        wire_configs: List[Dict[str, Any]],
        extras: List[Dict[str, Any]],
    ) -> List[Output]:
        response = await self._transport.apost(
            "/batch",
            {"inputs": inputs, "config": wire_configs, "kwargs": extras},
        )
        self._check_response(response)
        return _batch_output(_json_body(response), len(inputs))

    async def abatch(
        self,
        inputs: List[Input],
        config: Optional[Union[RunnableConfig, List[RunnableConfig]]] = None,
        *,
        return_exceptions: bool = False,
        batch_options: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> List[Output]:
        options = self._batch_options(return_exceptions, batch_options)
        if not inputs:
            return []
        local_configs, wire_configs, extras = self._split_batch(
            len(inputs), config, options, kwargs
        )
        return await self._abatch_with_config(
            self._abatch,
            list(inputs),
            local_configs,
            wire_configs=wire_configs,
            extras=extras,
        )

    # ------------------------------------------------------------------ #
    # stream
    # ------------------------------------------------------------------ #

    def _stream_request(
        self,
        input: Input,
        config: Optional[RunnableConfig],
        kwargs: Mapping[str, Any],
    ) -> Tuple[RunnableConfig, Dict[str, Any]]:
        local, extras = split_call_options(config, **kwargs)
        body = {"input": input, "config": strip_callbacks(local), "kwargs": extras}
        return ensure_config(local), body

    def _check_stream_response(self, response: httpx.Response, what: str) -> None:
        if not response.is_success:
            response.read()
            raise error_from_response(response)
        if _has_no_body(response):
            raise ProtocolViolation(
                f"Could not begin remote {what}. Please check the given URL and try again.",
                status_code=response.status_code,
            )

    async def _acheck_stream_response(self, response: httpx.Response, what: str) -> None:
        if not response.is_success:
            await response.aread()
            raise error_from_response(response)
        if _has_no_body(response):
            raise ProtocolViolation(
                f"Could not begin remote {what}. Please check the given URL and try again.",
                status_code=response.status_code,
            )

    def stream(
        self,
        input: Input,
        config: Optional[RunnableConfig] = None,
        **kwargs: Optional[Any],
    ) -> Iterator[Output]:
        local, body = self._stream_request(input, config, kwargs)
        callback_manager = get_callback_manager_for_config(local)
        run_manager = callback_manager.on_chain_start(
            None,
            input,
            name=local.get("run_name") or self.get_name(),
            run_id=local.pop("run_id", None),
        )
        final: Any = _MISSING
        try:
            with self._transport.stream_post("/stream", body) as (response, deadline):
                self._check_stream_response(response, "stream")
                logger.debug("Remote stream started: %s", self.url)
                chunks = deadline.iter_within(response.iter_bytes())
                for data in iter_event_data(iter_sse(chunks)):
                    chunk = loads(data)
                    final = _accumulate(final, chunk)
                    yield chunk
        except BaseException as exc:
            if isinstance(exc, Exception):
                attach_context(
                    exc,
                    _COMPONENT,
                    path="/stream",
                    url=self.url,
                    **_extract_dynamic_context(exc, (), "stream"),
                )
            run_manager.on_chain_error(exc)
            raise
        run_manager.on_chain_end(None if final is _MISSING else final)

    async def astream(
        self,
        input: Input,
        config: Optional[RunnableConfig] = None,
        **kwargs: Optional[Any],
    ) -> AsyncIterator[Output]:
        local, body = self._stream_request(input, config, kwargs)
        callback_manager = get_async_callback_manager_for_config(local)
        run_manager = await callback_manager.on_chain_start(
            None,
            input,
            name=local.get("run_name") or self.get_name(),
            run_id=local.pop("run_id", None),
        )
        final: Any = _MISSING
        try:
            async with self._transport.astream_post("/stream", body) as (response, deadline):
                await self._acheck_stream_response(response, "stream")
                logger.debug("Remote stream started: %s", self.url)
                chunks = deadline.aiter_within(response.aiter_bytes())
                async for data in aiter_event_data(aiter_sse(chunks)):
                    chunk = loads(data)
                    final = _accumulate(final, chunk)
                    yield chunk
        except BaseException as exc:
            if isinstance(exc, Exception):
                attach_context(
                    exc,
                    _COMPONENT,
                    path="/stream",
                    url=self.url,
                    **_extract_dynamic_context(exc, (), "astream"),
                )
            await run_manager.on_chain_error(exc)
            raise
        await run_manager.on_chain_end(None if final is _MISSING else final)

    # ------------------------------------------------------------------ #
    # stream_log
    # ------------------------------------------------------------------ #

    async def _alog_patches(
        self,
        input: Input,
        local: RunnableConfig,
        body: Dict[str, Any],
    ) -> AsyncIterator[RunLogPatch]:
        callback_manager = get_async_callback_manager_for_config(local)
        run_manager = await callback_manager.on_chain_start(
            None,
            input,
            name=local.get("run_name") or self.get_name(),
            run_id=local.pop("run_id", None),
        )
        try:
            async with self._transport.astream_post("/stream_log", body) as (response, deadline):
                await self._acheck_stream_response(response, "stream log")
                logger.debug("Remote stream log started: %s", self.url)
                async for patch in aiter_log_patches(deadline.aiter_within(response.aiter_bytes())):
                    yield patch
        except BaseException as exc:
            if isinstance(exc, Exception):
                attach_context(
                    exc,
                    _COMPONENT,
                    path="/stream_log",
                    url=self.url,
                    **_extract_dynamic_context(exc, (), "astream_log"),
                )
            await run_manager.on_chain_error(exc)
            raise
        await run_manager.on_chain_end(None)

    async def astream_log(
        self,
        input: Input,
        config: Optional[RunnableConfig] = None,
        *,
        diff: bool = True,
        include_names: Optional[Sequence[str]] = None,
        include_types: Optional[Sequence[str]] = None,
        include_tags: Optional[Sequence[str]] = None,
        exclude_names: Optional[Sequence[str]] = None,
        exclude_types: Optional[Sequence[str]] = None,
        exclude_tags: Optional[Sequence[str]] = None,
        stream_options: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> Union[AsyncIterator[RunLogPatch], AsyncIterator[RunLog]]:
        """
        Stream the remote run's log as `RunLogPatch` values.

        Filters may be given as keyword arguments or in `stream_options`
        (camelCase keys such as `includeNames` are accepted). The server is
        always asked for patches (`diff: false` on the wire means "do not
        diff server-side"); with `diff=False` the patches are folded here
        into cumulative `RunLog` states.
        """
        filters = LogStreamFilters.from_options(
            stream_options,
            include_names=include_names,
            include_types=include_types,
            include_tags=include_tags,
            exclude_names=exclude_names,
            exclude_types=exclude_types,
            exclude_tags=exclude_tags,
        )
        handler = LogStreamCallbackHandler(auto_close=False, **filters.handler_kwargs())

        local, extras = split_call_options(config, **kwargs)
        local = append_callback(local, handler)
        body: Dict[str, Any] = {
            "input": input,
            "config": strip_callbacks(local),
            "kwargs": extras,
            **filters.to_wire(),
            "diff": False,
        }

        patches = self._alog_patches(input, ensure_config(local), body)
        # Close the response as soon as the caller stops pulling.
        try:
            if diff:
                async for patch in patches:
                    yield patch
            else:
                states = accumulate_run_log(patches)
                try:
                    async for state in states:
                        yield state
                finally:
                    await states.aclose()
        finally:
            await patches.aclose()


__all__ = [
    "RemoteRunnable",
    "with_remote_error_context",
    "with_async_remote_error_context",
]
