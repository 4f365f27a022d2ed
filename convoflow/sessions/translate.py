"""Translate engine messages into broadcast events."""

from __future__ import annotations

from convoflow.engine import (
    AssistantMessage,
    EngineFailure,
    EngineMessage,
    OpaqueMessage,
    ResultMessage,
    TextBlock,
    ToolUseBlock,
    TurnStart,
    UserEcho,
)

from .models import (
    AssistantMessageEvent,
    BroadcastEvent,
    ErrorEvent,
    ResultEvent,
    ToolUseEvent,
    UserMessageEvent,
)


def _assistant_events(message: AssistantMessage, session_id: str) -> list[BroadcastEvent]:
    content = message.message.content
    if isinstance(content, str):
        return [AssistantMessageEvent(content=content, session_id=session_id)]
    events: list[BroadcastEvent] = []
    for block in content:
        if isinstance(block, TextBlock):
            events.append(AssistantMessageEvent(content=block.text, session_id=session_id))
        elif isinstance(block, ToolUseBlock):
            events.append(
                ToolUseEvent(
                    tool_name=block.name,
                    tool_id=block.id,
                    tool_input=block.input,
                    session_id=session_id,
                )
            )
    return events


def _result_event(message: ResultMessage, session_id: str) -> ResultEvent:
    if message.success:
        return ResultEvent(
            success=True,
            result=message.result,
            cost=message.total_cost_usd,
            duration_ms=message.duration_ms,
            session_id=session_id,
        )
    return ResultEvent(success=False, error=message.subtype, session_id=session_id)


def error_event(error: str, session_id: str) -> ErrorEvent:
    return ErrorEvent(error=error, session_id=session_id)


def translate_message(message: EngineMessage, session_id: str) -> list[BroadcastEvent]:
    """Return the events ``message`` produces, in publication order."""

    if isinstance(message, AssistantMessage):
        return _assistant_events(message, session_id)
    if isinstance(message, ResultMessage):
        return [_result_event(message, session_id)]
    if isinstance(message, UserEcho):
        return [UserMessageEvent(content=message.message.content, session_id=session_id)]
    if isinstance(message, EngineFailure):
        return [error_event(message.error, session_id)]
    if isinstance(message, TurnStart | OpaqueMessage):
        return []
    raise TypeError(f"unhandled engine message: {type(message).__name__}")


__all__ = ["error_event", "translate_message"]
