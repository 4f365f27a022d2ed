"""Engines and subscribers for tests and local development."""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from convoflow.engine import QueryOptions
from convoflow.errors import DeliveryError
from convoflow.sessions.models import BroadcastEvent


@dataclass(slots=True)
class QueryCall:
    prompt: str
    options: QueryOptions


class Raise:
    """Script step that raises ``error`` from inside the engine stream."""

    def __init__(self, error: BaseException) -> None:
        self.error = error


@dataclass(slots=True)
class Gate:
    """Script step that blocks the stream until ``release`` is set."""

    reached: asyncio.Event = field(default_factory=asyncio.Event)
    release: asyncio.Event = field(default_factory=asyncio.Event)


ScriptStep = Mapping[str, Any] | Raise | Gate


class ScriptedQueryEngine:
    """Replays one script per ``query`` call and records every invocation.

    Scripts are consumed in order; once exhausted the last one is reused.
    ``in_flight`` and ``max_in_flight`` track overlapping invocations.
    """

    def __init__(self, scripts: Sequence[Sequence[ScriptStep]]) -> None:
        if not scripts:
            raise ValueError("at least one script is required")
        self._scripts = [list(script) for script in scripts]
        self.calls: list[QueryCall] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def query(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]:
        index = min(len(self.calls), len(self._scripts) - 1)
        self.calls.append(QueryCall(prompt=prompt, options=options))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for step in self._scripts[index]:
                if isinstance(step, Raise):
                    raise step.error
                if isinstance(step, Gate):
                    step.reached.set()
                    await step.release.wait()
                    continue
                await asyncio.sleep(0)
                yield dict(step)
        finally:
            self.in_flight -= 1


class EchoQueryEngine:
    """Minimal engine that answers every prompt with an echo of it."""

    def __init__(self, *, prefix: str = "echo: ") -> None:
        self._prefix = prefix

    async def query(self, prompt: str, options: QueryOptions) -> AsyncIterator[Any]:
        token = options.resume or secrets.token_hex(8)
        yield {"type": "system", "subtype": "init", "session_id": token}
        yield {"type": "assistant", "message": {"content": [{"type": "text", "text": f"{self._prefix}{prompt}"}]}}
        yield {
            "type": "result",
            "subtype": "success",
            "result": f"{self._prefix}{prompt}",
            "total_cost_usd": 0.0,
            "duration_ms": 0,
        }


class RecordingSubscriber:
    """Subscriber that keeps every event it receives."""

    def __init__(self, *, fail: bool = False) -> None:
        self.events: list[BroadcastEvent] = []
        self.fail = fail

    def send(self, event: BroadcastEvent) -> None:
        if self.fail:
            raise DeliveryError("connection closed")
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def payloads(self) -> list[dict[str, Any]]:
        return [event.to_payload() for event in self.events]


__all__ = [
    "EchoQueryEngine",
    "Gate",
    "QueryCall",
    "Raise",
    "RecordingSubscriber",
    "ScriptStep",
    "ScriptedQueryEngine",
]
