# remote_runnable/serde.py
# SPDX-License-Identifier: Apache-2.0

"""
Payload codec for the remote runnable wire format.

Requests are plain JSON. Responses are "domain JSON": LangChain objects
serialized as loosely-typed objects that must be rebuilt on the client. The
reviver does this by structural matching:

    revive({"page_content": "hi", "metadata": {}})     -> Document
    revive({"content": "x", "type": "ai",
            "additional_kwargs": {}})                  -> AIMessage
    revive([{...}, {...}])                             -> [revived, revived]
    revive({"unknown": {"text": "t"}})                 -> {"unknown": StringPromptValue}

Shapes are tested in a fixed priority order (see `_SHAPES`). The first shape
whose required keys are all present, and whose `type` discriminator (when the
shape has one) names a known variant, wins. A payload that matches a shape but
is rejected by the typed constructor falls through to the next shape, and
ultimately to a plain mapping, so revival never raises on odd data.

Prompt values are selected by key presence only ("messages" / "text"): some
servers send a `type` discriminator there and some do not.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, FrozenSet, Mapping, Tuple, Type, Union
from uuid import UUID

from langchain_core.agents import AgentAction, AgentActionMessageLog, AgentFinish
from langchain_core.documents import Document
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    ChatMessage,
    ChatMessageChunk,
    FunctionMessage,
    FunctionMessageChunk,
    HumanMessage,
    HumanMessageChunk,
    SystemMessage,
    SystemMessageChunk,
    ToolMessage,
    ToolMessageChunk,
)
from langchain_core.outputs import (
    ChatGeneration,
    ChatGenerationChunk,
    Generation,
    GenerationChunk,
    LLMResult,
)
from langchain_core.prompt_values import ChatPromptValue, StringPromptValue
from pydantic import BaseModel, ValidationError

from remote_runnable.errors import ProtocolViolation

logger = logging.getLogger(__name__)

Builder = Callable[[Mapping[str, Any]], Any]


# =============================================================================
# Encoding
# =============================================================================


def _default(value: Any) -> Any:
    """`json.dumps` fallback for values the stdlib encoder does not know."""
    if isinstance(value, BaseModel):
        return value.model_dump()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(value: Any) -> bytes:
    """Encode a request body as UTF-8 JSON."""
    return json.dumps(value, default=_default, ensure_ascii=False).encode("utf-8")


def loads(text: Union[str, bytes]) -> Any:
    """
    Decode a response payload and revive it.

    Raises:
        ProtocolViolation: if `text` is not valid JSON.
    """
    try:
        decoded = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ProtocolViolation(f"Invalid JSON payload from remote runnable: {exc}") from exc
    return revive(decoded)


# =============================================================================
# Builders
# =============================================================================


def _without_type(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if k != "type"}


def _message(cls: Type[BaseMessage]) -> Builder:
    # Message content and kwargs are opaque; only the envelope is typed.
    def build(payload: Mapping[str, Any]) -> BaseMessage:
        return cls(**_without_type(payload))

    return build


def _document(payload: Mapping[str, Any]) -> Document:
    fields = _without_type(payload)
    return Document(**fields)


def _generation(cls: Type[Generation]) -> Builder:
    def build(payload: Mapping[str, Any]) -> Generation:
        return cls(text=payload["text"], generation_info=payload["generation_info"])

    return build


def _chat_generation(cls: Type[ChatGeneration]) -> Builder:
    # `text` is derived from the message by the model itself.
    def build(payload: Mapping[str, Any]) -> ChatGeneration:
        return cls(
            message=revive(payload.get("message")),
            generation_info=payload["generation_info"],
        )

    return build


def _agent_action(payload: Mapping[str, Any]) -> AgentAction:
    return AgentAction(
        tool=payload["tool"],
        tool_input=payload["tool_input"],
        log=payload["log"],
    )


def _agent_action_message_log(payload: Mapping[str, Any]) -> AgentActionMessageLog:
    return AgentActionMessageLog(
        tool=payload["tool"],
        tool_input=payload["tool_input"],
        log=payload["log"],
        message_log=revive(payload.get("message_log")),
    )


def _agent_finish(payload: Mapping[str, Any]) -> AgentFinish:
    return AgentFinish(return_values=payload["return_values"], log=payload["log"])


def _llm_result(payload: Mapping[str, Any]) -> LLMResult:
    # `run` stays raw: the model coerces it into RunInfo records.
    return LLMResult(
        generations=revive(payload["generations"]),
        llm_output=payload.get("llm_output"),
        run=payload["run"],
    )


def _chat_prompt_value(payload: Mapping[str, Any]) -> ChatPromptValue:
    return ChatPromptValue(messages=revive(payload["messages"]))


def _string_prompt_value(payload: Mapping[str, Any]) -> StringPromptValue:
    return StringPromptValue(text=payload["text"])


# =============================================================================
# Shape table
# =============================================================================

_MESSAGE_TYPES: Mapping[str, Builder] = {
    "human": _message(HumanMessage),
    "HumanMessage": _message(HumanMessage),
    "system": _message(SystemMessage),
    "SystemMessage": _message(SystemMessage),
    "chat": _message(ChatMessage),
    "ChatMessage": _message(ChatMessage),
    "function": _message(FunctionMessage),
    "FunctionMessage": _message(FunctionMessage),
    "tool": _message(ToolMessage),
    "ToolMessage": _message(ToolMessage),
    "ai": _message(AIMessage),
    "AIMessage": _message(AIMessage),
    "HumanMessageChunk": _message(HumanMessageChunk),
    "SystemMessageChunk": _message(SystemMessageChunk),
    "ChatMessageChunk": _message(ChatMessageChunk),
    "FunctionMessageChunk": _message(FunctionMessageChunk),
    "ToolMessageChunk": _message(ToolMessageChunk),
    "AIMessageChunk": _message(AIMessageChunk),
}

_GENERATION_TYPES: Mapping[str, Builder] = {
    "ChatGenerationChunk": _chat_generation(ChatGenerationChunk),
    "ChatGeneration": _chat_generation(ChatGeneration),
    "GenerationChunk": _generation(GenerationChunk),
    "Generation": _generation(Generation),
}

# (required keys, builder or {type value: builder}); order is significant.
_SHAPES: Tuple[Tuple[FrozenSet[str], Union[Builder, Mapping[str, Builder]]], ...] = (
    (frozenset({"page_content", "metadata"}), _document),
    (frozenset({"content", "type", "additional_kwargs"}), _MESSAGE_TYPES),
    (frozenset({"text", "generation_info", "type"}), _GENERATION_TYPES),
    (
        frozenset({"tool", "tool_input", "log", "type"}),
        {
            "AgentAction": _agent_action,
            "AgentActionMessageLog": _agent_action_message_log,
        },
    ),
    (frozenset({"return_values", "log", "type"}), {"AgentFinish": _agent_finish}),
    (frozenset({"generations", "run", "type"}), {"LLMResult": _llm_result}),
    (frozenset({"messages"}), _chat_prompt_value),
    (frozenset({"text"}), _string_prompt_value),
)


def _match(obj: Mapping[str, Any]) -> Tuple[bool, Any]:
    keys = obj.keys()
    for required, target in _SHAPES:
        if not required.issubset(keys):
            continue
        if isinstance(target, Mapping):
            discriminator = obj.get("type")
            builder = target.get(discriminator) if isinstance(discriminator, str) else None
            if builder is None:
                continue
        else:
            builder = target
        try:
            return True, builder(obj)
        except (ValidationError, TypeError, LookupError) as exc:
            # Some model validators index fields directly and raise KeyError.
            logger.debug(
                "Payload matched keys %s but was rejected (%s); trying next shape",
                sorted(required),
                type(exc).__name__,
            )
    return False, None


def revive(value: Any) -> Any:
    """
    Rebuild typed LangChain values from decoded JSON.

    Lists are revived element-wise, mappings are matched against the shape
    table (falling back to a field-by-field revived dict), and anything else
    is returned unchanged.
    """
    if isinstance(value, list):
        return [revive(item) for item in value]
    if not isinstance(value, dict):
        return value

    matched, result = _match(value)
    if matched:
        return result
    return {key: revive(item) for key, item in value.items()}


__all__ = [
    "dumps",
    "loads",
    "revive",
]
