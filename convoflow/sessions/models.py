"""Durable session records and the events fanned out to subscribers."""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionRecord(BaseModel):
    id: str
    continuation_token: str | None = None
    created_at: int = Field(default_factory=now_ms)
    last_active_at: int = Field(default_factory=now_ms)
    message_count: int = Field(default=0, ge=0)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase JSON document sent over the wire."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AssistantMessageEvent(WireModel):
    type: Literal["assistant_message"] = "assistant_message"
    content: str
    session_id: str


class ToolUseEvent(WireModel):
    type: Literal["tool_use"] = "tool_use"
    tool_name: str
    tool_id: str
    tool_input: Any = Field(default_factory=dict)
    session_id: str


class ResultEvent(WireModel):
    type: Literal["result"] = "result"
    success: bool
    result: Any = None
    cost: float | None = None
    duration_ms: int | float | None = None
    error: str | None = None
    session_id: str


class UserMessageEvent(WireModel):
    type: Literal["user_message"] = "user_message"
    content: Any = None
    session_id: str


class SessionInfoEvent(WireModel):
    type: Literal["session_info"] = "session_info"
    session_id: str
    message_count: int
    is_active: bool


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    error: str
    session_id: str


BroadcastEvent = Annotated[
    AssistantMessageEvent | ToolUseEvent | ResultEvent | UserMessageEvent | SessionInfoEvent | ErrorEvent,
    Field(discriminator="type"),
]

broadcast_event_adapter: TypeAdapter[BroadcastEvent] = TypeAdapter(BroadcastEvent)


class SystemNotice(WireModel):
    """Unicast acknowledgement sent by the gateway, never broadcast."""

    type: Literal["system"] = "system"
    message: str
    session_id: str


__all__ = [
    "AssistantMessageEvent",
    "BroadcastEvent",
    "ErrorEvent",
    "ResultEvent",
    "SessionInfoEvent",
    "SessionRecord",
    "SystemNotice",
    "ToolUseEvent",
    "UserMessageEvent",
    "WireModel",
    "broadcast_event_adapter",
    "now_ms",
]
