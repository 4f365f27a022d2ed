"""Contract between session coordinators and the agent query engine.

The engine itself (reasoning, tools, sandboxing) is opaque. Coordinators only see
an ordered stream of loosely-typed messages, which is parsed here into a closed
set of variants so that the rest of the package can branch exhaustively:

* ``TurnStart`` - ``{"type": "system", "subtype": "init", "session_id": ...}``
* ``AssistantMessage`` - ``{"type": "assistant", "message": {"content": ...}}``
* ``UserEcho`` - ``{"type": "user", "message": {"content": ...}}``
* ``ResultMessage`` - ``{"type": "result", "subtype": ..., "result": ...}``
* ``EngineFailure`` - ``{"type": "error", "error": ...}``
* ``OpaqueMessage`` - anything else; carried through and ignored.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger("convoflow.engine")


class EngineModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class TextBlock(EngineModel):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(EngineModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Any = Field(default_factory=dict)


class OpaqueBlock(EngineModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str


ContentBlock = Annotated[TextBlock | ToolUseBlock | OpaqueBlock, Field(union_mode="left_to_right")]


class AssistantBody(EngineModel):
    content: str | list[ContentBlock]


class UserBody(EngineModel):
    content: Any = None


class TurnStart(EngineModel):
    type: Literal["system"] = "system"
    subtype: Literal["init"] = "init"
    session_id: str


class AssistantMessage(EngineModel):
    type: Literal["assistant"] = "assistant"
    message: AssistantBody


class UserEcho(EngineModel):
    type: Literal["user"] = "user"
    message: UserBody


class ResultMessage(EngineModel):
    type: Literal["result"] = "result"
    subtype: str
    result: Any = None
    total_cost_usd: float | None = None
    duration_ms: int | float | None = None

    @property
    def success(self) -> bool:
        return self.subtype == "success"


class EngineFailure(EngineModel):
    type: Literal["error"] = "error"
    error: str


class OpaqueMessage(EngineModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    type: str
    subtype: str | None = None


EngineMessage = TurnStart | AssistantMessage | UserEcho | ResultMessage | EngineFailure | OpaqueMessage

_PARSED = (TurnStart, AssistantMessage, UserEcho, ResultMessage, EngineFailure, OpaqueMessage)

_VARIANTS: dict[str, type[EngineModel]] = {
    "assistant": AssistantMessage,
    "user": UserEcho,
    "result": ResultMessage,
    "error": EngineFailure,
}


@dataclass(slots=True, frozen=True)
class QueryOptions:
    """Per-invocation options passed to the engine.

    ``resume`` carries the continuation token of a previous turn; ``None`` asks
    the engine to start a fresh conversation.
    """

    resume: str | None = None


class AgentQueryEngine(Protocol):
    def query(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]: ...


def parse_engine_message(raw: Any) -> EngineMessage:
    """Normalise one raw engine message into an ``EngineMessage`` variant.

    Unknown tags and malformed payloads become ``OpaqueMessage`` so a single odd
    message never fails a turn.
    """

    if isinstance(raw, _PARSED):
        return raw
    if isinstance(raw, BaseModel):
        data: Mapping[str, Any] = raw.model_dump()
    elif isinstance(raw, Mapping):
        data = raw
    else:
        logger.debug("engine_message_unrecognised", extra={"python_type": type(raw).__name__})
        return OpaqueMessage(type=type(raw).__name__)

    tag = str(data.get("type") or "unknown")
    subtype = data.get("subtype")
    if tag == "system":
        if subtype == "init" and data.get("session_id"):
            return TurnStart(session_id=str(data["session_id"]))
        return OpaqueMessage(type=tag, subtype=subtype if isinstance(subtype, str) else None)

    model = _VARIANTS.get(tag)
    if model is None:
        return OpaqueMessage(type=tag, subtype=subtype if isinstance(subtype, str) else None)
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        logger.warning(
            "engine_message_invalid",
            extra={"message_type": tag, "errors": exc.error_count()},
        )
        return OpaqueMessage(type=tag, subtype=subtype if isinstance(subtype, str) else None)


__all__ = [
    "AgentQueryEngine",
    "AssistantBody",
    "AssistantMessage",
    "ContentBlock",
    "EngineFailure",
    "EngineMessage",
    "OpaqueBlock",
    "OpaqueMessage",
    "QueryOptions",
    "ResultMessage",
    "TextBlock",
    "ToolUseBlock",
    "TurnStart",
    "UserBody",
    "UserEcho",
    "parse_engine_message",
]
