"""Process-wide registry of live session coordinators."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

from convoflow.config import SessionConfig
from convoflow.engine import AgentQueryEngine
from convoflow.errors import PersistenceError

from .broker import Subscriber
from .coordinator import SessionCoordinator
from .eviction import EvictionScheduler
from .models import SessionRecord
from .store import SessionMetadataStore

logger = logging.getLogger("convoflow.sessions")


class SessionRegistry:
    """Maps session ids to coordinators, creating them on first contact."""

    def __init__(
        self,
        *,
        engine: AgentQueryEngine,
        store: SessionMetadataStore,
        config: SessionConfig | None = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._config = config or SessionConfig()
        self._coordinators: dict[str, SessionCoordinator] = {}
        self._lock = asyncio.Lock()
        self._eviction = EvictionScheduler(self._evict, idle_timeout_s=self._config.idle_timeout_s)
        self._started = False

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def store(self) -> SessionMetadataStore:
        return self._store

    @property
    def eviction(self) -> EvictionScheduler:
        return self._eviction

    @property
    def active_count(self) -> int:
        return len(self._coordinators)

    def __len__(self) -> int:
        return len(self._coordinators)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._coordinators

    async def __aenter__(self) -> SessionRegistry:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    async def start(self) -> None:
        if self._started:
            return
        self._store.init_schema()
        self._started = True
        logger.info("registry_started", extra={"idle_timeout_s": self._config.idle_timeout_s})

    async def shutdown(self) -> None:
        await self._eviction.cancel_all()
        async with self._lock:
            coordinators = list(self._coordinators.values())
            self._coordinators.clear()
        for coordinator in coordinators:
            coordinator.close()
        self._store.close()
        self._started = False
        logger.info("registry_stopped", extra={"closed_sessions": len(coordinators)})

    def get(self, session_id: str) -> SessionCoordinator | None:
        return self._coordinators.get(session_id)

    async def resolve_or_create(self, session_id: str) -> SessionCoordinator:
        async with self._lock:
            coordinator = self._coordinators.get(session_id)
            if coordinator is None:
                record = self._load_record(session_id)
                coordinator = SessionCoordinator(record, engine=self._engine, store=self._store)
                self._coordinators[session_id] = coordinator
                logger.info(
                    "session_created",
                    extra={
                        "session_id": session_id,
                        "message_count": record.message_count,
                        "resumable": record.continuation_token is not None,
                    },
                )
        return coordinator

    async def remove(self, session_id: str) -> SessionCoordinator | None:
        async with self._lock:
            return self._coordinators.pop(session_id, None)

    async def detach(self, session_id: str, connection: Subscriber) -> bool:
        """Unsubscribe ``connection``; arms the idle timer when none remain.

        Returns True when a timer was armed. A connection that was never
        subscribed (or was already dropped) only arms one if none is pending.
        """

        coordinator = self._coordinators.get(session_id)
        if coordinator is None:
            return False
        was_subscribed = coordinator.is_subscribed(connection)
        if not coordinator.unsubscribe(connection):
            return False
        if not was_subscribed and self._eviction.is_pending(coordinator):
            return False
        self._eviction.schedule(coordinator)
        return True

    async def _evict(self, coordinator: SessionCoordinator) -> bool:
        async with self._lock:
            if self._coordinators.get(coordinator.session_id) is not coordinator:
                return False
            if coordinator.has_subscribers():
                return False
            self._coordinators.pop(coordinator.session_id, None)
        coordinator.close()
        if self._config.purge_on_evict:
            try:
                self._store.delete(coordinator.session_id)
            except PersistenceError as exc:
                logger.warning(
                    "session_purge_failed",
                    extra={"session_id": coordinator.session_id, "error": exc.message},
                )
        logger.info("session_evicted", extra={"session_id": coordinator.session_id})
        return True

    def _load_record(self, session_id: str) -> SessionRecord:
        try:
            self._store.insert_if_absent(session_id)
            record = self._store.get(session_id)
        except PersistenceError as exc:
            logger.warning(
                "session_load_failed",
                extra={"session_id": session_id, "operation": exc.operation, "error": exc.message},
            )
            record = None
        return record or SessionRecord(id=session_id)


__all__ = ["SessionRegistry"]
