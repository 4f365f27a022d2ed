"""Idle-session reclamation.

A timer is armed each time a coordinator loses its last subscriber. Timers are
never cancelled on resubscription; when one fires it re-checks the coordinator
and leaves it alone if a subscriber has reattached in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .coordinator import SessionCoordinator

logger = logging.getLogger("convoflow.sessions")

EvictCallback = Callable[[SessionCoordinator], Awaitable[bool]]


class EvictionScheduler:
    def __init__(self, evict: EvictCallback, *, idle_timeout_s: float) -> None:
        self._evict = evict
        self._idle_timeout_s = idle_timeout_s
        self._timers: dict[asyncio.Task[None], SessionCoordinator] = {}

    @property
    def idle_timeout_s(self) -> float:
        return self._idle_timeout_s

    @property
    def pending(self) -> int:
        return len(self._timers)

    def is_pending(self, coordinator: SessionCoordinator) -> bool:
        return any(armed is coordinator for armed in self._timers.values())

    def schedule(self, coordinator: SessionCoordinator) -> asyncio.Task[None]:
        timer = asyncio.create_task(
            self._fire(coordinator),
            name=f"evict:{coordinator.session_id}",
        )
        self._timers[timer] = coordinator
        timer.add_done_callback(self._release)
        logger.debug(
            "eviction_scheduled",
            extra={"session_id": coordinator.session_id, "idle_timeout_s": self._idle_timeout_s},
        )
        return timer

    def _release(self, timer: asyncio.Task[None]) -> None:
        self._timers.pop(timer, None)

    async def cancel_all(self) -> None:
        timers = list(self._timers)
        for timer in timers:
            timer.cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)
        self._timers.clear()

    async def _fire(self, coordinator: SessionCoordinator) -> None:
        await asyncio.sleep(self._idle_timeout_s)
        if coordinator.has_subscribers():
            logger.debug("eviction_skipped", extra={"session_id": coordinator.session_id})
            return
        try:
            await self._evict(coordinator)
        except Exception:
            logger.exception("eviction_failed", extra={"session_id": coordinator.session_id})


__all__ = ["EvictCallback", "EvictionScheduler"]
