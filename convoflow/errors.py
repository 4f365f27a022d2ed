"""Error taxonomy for session coordination."""

from __future__ import annotations

from typing import Any


class ConvoflowError(Exception):
    """Base class for every error raised by convoflow."""

    def __init__(self, message: str, *, session_id: str | None = None, extra: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.session_id = session_id
        self.extra = extra or {}


class SessionNotFoundError(ConvoflowError):
    """No live coordinator exists for the requested session."""

    def __init__(self, session_id: str) -> None:
        super().__init__("Session not found", session_id=session_id)


class QueryInvocationError(ConvoflowError):
    """The agent query engine raised or streamed a failure."""

    def __init__(self, session_id: str, detail: str) -> None:
        super().__init__(detail, session_id=session_id)
        self.detail = detail


class DeliveryError(ConvoflowError):
    """A subscriber could not accept an event."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceError(ConvoflowError):
    """The metadata store failed to read or write a session record."""

    def __init__(self, operation: str, session_id: str | None, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}", session_id=session_id, extra={"operation": operation})
        self.operation = operation


__all__ = [
    "ConvoflowError",
    "DeliveryError",
    "PersistenceError",
    "QueryInvocationError",
    "SessionNotFoundError",
]
