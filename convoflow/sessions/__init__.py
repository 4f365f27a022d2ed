"""Session coordination and broadcast primitives."""

from .broker import BroadcastChannel, Subscriber
from .coordinator import SessionCoordinator
from .eviction import EvictionScheduler
from .models import (
    AssistantMessageEvent,
    BroadcastEvent,
    ErrorEvent,
    ResultEvent,
    SessionInfoEvent,
    SessionRecord,
    SystemNotice,
    ToolUseEvent,
    UserMessageEvent,
)
from .registry import SessionRegistry
from .store import InMemorySessionStore, SessionMetadataStore, SqliteSessionStore
from .translate import translate_message

__all__ = [
    "AssistantMessageEvent",
    "BroadcastChannel",
    "BroadcastEvent",
    "ErrorEvent",
    "EvictionScheduler",
    "InMemorySessionStore",
    "ResultEvent",
    "SessionCoordinator",
    "SessionInfoEvent",
    "SessionMetadataStore",
    "SessionRecord",
    "SessionRegistry",
    "SqliteSessionStore",
    "Subscriber",
    "SystemNotice",
    "ToolUseEvent",
    "UserMessageEvent",
    "translate_message",
]
