"""In-process fan-out of broadcast events to the subscribers of one session."""

from __future__ import annotations

import logging
from typing import Protocol

from convoflow.errors import DeliveryError

from .models import BroadcastEvent

logger = logging.getLogger("convoflow.sessions")


class Subscriber(Protocol):
    """A live connection able to take events without suspending.

    ``send`` must not block; it raises when the event cannot be accepted.
    """

    def send(self, event: BroadcastEvent) -> None: ...


class BroadcastChannel:
    """Ordered, best-effort delivery to a set of subscribers."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._subscribers: dict[int, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: object) -> bool:
        return id(subscriber) in self._subscribers

    def add(self, subscriber: Subscriber) -> bool:
        """Add ``subscriber``; returns False when it was already present."""

        key = id(subscriber)
        if key in self._subscribers:
            return False
        self._subscribers[key] = subscriber
        return True

    def discard(self, subscriber: Subscriber) -> bool:
        return self._subscribers.pop(id(subscriber), None) is not None

    def clear(self) -> None:
        self._subscribers.clear()

    def deliver(self, subscriber: Subscriber, event: BroadcastEvent) -> bool:
        """Send ``event`` to one subscriber, dropping it if the send fails."""

        try:
            subscriber.send(event)
        except Exception as exc:
            self.discard(subscriber)
            reason = exc.reason if isinstance(exc, DeliveryError) else repr(exc)
            logger.debug(
                "subscriber_dropped",
                extra={"session_id": self.session_id, "event_type": event.type, "reason": reason},
            )
            return False
        return True

    def publish(self, event: BroadcastEvent) -> int:
        """Deliver ``event`` to every current subscriber; returns the delivered count."""

        delivered = 0
        for subscriber in list(self._subscribers.values()):
            if self.deliver(subscriber, event):
                delivered += 1
        return delivered


__all__ = ["BroadcastChannel", "Subscriber"]
