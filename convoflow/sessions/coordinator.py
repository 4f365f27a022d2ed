"""Per-conversation coordination of agent turns and subscribers."""

from __future__ import annotations

import asyncio
import logging

from convoflow.engine import (
    AgentQueryEngine,
    EngineFailure,
    QueryOptions,
    ResultMessage,
    TurnStart,
    parse_engine_message,
)
from convoflow.errors import PersistenceError, QueryInvocationError, SessionNotFoundError

from .broker import BroadcastChannel, Subscriber
from .models import SessionInfoEvent, SessionRecord, now_ms
from .store import SessionMetadataStore
from .translate import error_event, translate_message

logger = logging.getLogger("convoflow.sessions")


class SessionCoordinator:
    """Owns one conversation: serialises turns and fans out their events.

    At most one turn is in flight at a time. ``submit_message`` waits for any
    running turn to settle before starting its own and returns once the engine
    stream for that turn has drained. ``reset`` detaches a running turn without
    cancelling it; whatever the detached turn still yields is drained silently.
    """

    def __init__(
        self,
        record: SessionRecord,
        *,
        engine: AgentQueryEngine,
        store: SessionMetadataStore,
    ) -> None:
        self._record = record.model_copy()
        self._engine = engine
        self._store = store
        self._channel = BroadcastChannel(record.id)
        self._turn: asyncio.Task[None] | None = None
        self._generation = 0
        self._closed = False

    @property
    def session_id(self) -> str:
        return self._record.id

    @property
    def record(self) -> SessionRecord:
        return self._record.model_copy()

    @property
    def continuation_token(self) -> str | None:
        return self._record.continuation_token

    @property
    def message_count(self) -> int:
        return self._record.message_count

    @property
    def is_active(self) -> bool:
        return self._turn is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._channel)

    def has_subscribers(self) -> bool:
        return len(self._channel) > 0

    def subscribe(self, connection: Subscriber) -> None:
        """Attach ``connection`` and send it, and only it, a ``session_info`` event."""

        self._channel.add(connection)
        info = SessionInfoEvent(
            session_id=self.session_id,
            message_count=self._record.message_count,
            is_active=self.is_active,
        )
        self._channel.deliver(connection, info)

    def is_subscribed(self, connection: Subscriber) -> bool:
        return connection in self._channel

    def unsubscribe(self, connection: Subscriber) -> bool:
        """Detach ``connection``; returns True when no subscribers remain."""

        self._channel.discard(connection)
        return not self.has_subscribers()

    async def submit_message(self, content: str) -> None:
        if self._closed:
            raise SessionNotFoundError(self.session_id)
        while self._turn is not None:
            await asyncio.wait({self._turn})
            if self._closed:
                raise SessionNotFoundError(self.session_id)

        self._record.message_count += 1
        logger.info(
            "turn_started",
            extra={
                "session_id": self.session_id,
                "message_count": self._record.message_count,
                "resume": self._record.continuation_token is not None,
            },
        )
        turn = asyncio.create_task(
            self._run_turn(content, self._generation),
            name=f"turn:{self.session_id}:{self._record.message_count}",
        )
        self._turn = turn
        await asyncio.shield(turn)

    def reset(self) -> None:
        """Forget the conversation and return to idle immediately."""

        detached = self._turn is not None
        self._generation += 1
        self._turn = None
        self._record.continuation_token = None
        self._record.message_count = 0
        self._record.last_active_at = now_ms()
        logger.info("session_reset", extra={"session_id": self.session_id, "detached_turn": detached})
        self._persist()

    def close(self) -> None:
        """Drop subscribers and turn bookkeeping; later submissions are rejected."""

        self._closed = True
        self._generation += 1
        self._turn = None
        self._channel.clear()

    async def _run_turn(self, content: str, generation: int) -> None:
        options = QueryOptions(resume=self._record.continuation_token)
        try:
            async for raw in self._engine.query(content, options):
                if generation != self._generation:
                    continue
                message = parse_engine_message(raw)
                if isinstance(message, TurnStart):
                    self._record.continuation_token = message.session_id
                    self._record.last_active_at = now_ms()
                    logger.debug(
                        "continuation_token_captured",
                        extra={"session_id": self.session_id, "token": message.session_id},
                    )
                    self._persist()
                elif isinstance(message, EngineFailure):
                    self._log_failure(QueryInvocationError(self.session_id, message.error))
                for event in translate_message(message, self.session_id):
                    self._channel.publish(event)
                if isinstance(message, ResultMessage):
                    logger.info(
                        "turn_result",
                        extra={
                            "session_id": self.session_id,
                            "subtype": message.subtype,
                            "duration_ms": message.duration_ms,
                        },
                    )
        except Exception as exc:
            if generation != self._generation:
                logger.debug("detached_turn_failed", extra={"session_id": self.session_id, "error": repr(exc)})
                return
            failure = QueryInvocationError(self.session_id, str(exc) or exc.__class__.__name__)
            self._log_failure(failure, exc)
            self._channel.publish(error_event(failure.detail, self.session_id))
        finally:
            if generation == self._generation:
                self._turn = None
                self._record.last_active_at = now_ms()
                self._persist()

    def _log_failure(self, failure: QueryInvocationError, exc: BaseException | None = None) -> None:
        logger.error(
            "turn_failed",
            extra={"session_id": self.session_id, "error": failure.detail, "streamed": exc is None},
            exc_info=exc,
        )

    def _persist(self) -> None:
        if self._closed:
            return
        try:
            self._store.update(
                self.session_id,
                continuation_token=self._record.continuation_token,
                last_active_at=self._record.last_active_at,
                message_count=self._record.message_count,
            )
        except PersistenceError as exc:
            logger.warning(
                "session_persist_failed",
                extra={"session_id": self.session_id, "operation": exc.operation, "error": exc.message},
            )


__all__ = ["SessionCoordinator"]
