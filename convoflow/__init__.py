"""Multi-subscriber session coordination for conversational agents."""

from __future__ import annotations

from . import testkit
from .config import ServerConfig, SessionConfig
from .engine import AgentQueryEngine, EngineMessage, QueryOptions, parse_engine_message
from .errors import (
    ConvoflowError,
    DeliveryError,
    PersistenceError,
    QueryInvocationError,
    SessionNotFoundError,
)
from .sessions import (
    BroadcastChannel,
    InMemorySessionStore,
    SessionCoordinator,
    SessionRecord,
    SessionRegistry,
    SqliteSessionStore,
)

__all__ = [
    "AgentQueryEngine",
    "BroadcastChannel",
    "ConvoflowError",
    "DeliveryError",
    "EngineMessage",
    "InMemorySessionStore",
    "PersistenceError",
    "QueryInvocationError",
    "QueryOptions",
    "ServerConfig",
    "SessionConfig",
    "SessionCoordinator",
    "SessionNotFoundError",
    "SessionRecord",
    "SessionRegistry",
    "SqliteSessionStore",
    "parse_engine_message",
    "testkit",
]

__version__ = "0.1.0"
