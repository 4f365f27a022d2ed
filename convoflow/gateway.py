"""WebSocket transport gateway exposing session coordinators over FastAPI."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager, suppress
from typing import Annotated, Any, Literal

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from convoflow.errors import ConvoflowError, DeliveryError, SessionNotFoundError
from convoflow.sessions.models import ErrorEvent, SystemNotice, WireModel
from convoflow.sessions.registry import SessionRegistry

logger = logging.getLogger("convoflow.gateway")

_CLOSE = object()


def _decode_frame(frame: dict[str, Any]) -> Any:
    """Parse a text or binary frame as JSON; raises ``ValueError`` otherwise."""

    text = frame.get("text")
    if text is None:
        data = frame.get("bytes")
        if data is None:
            raise ValueError("empty frame")
        text = data.decode("utf-8")
    return json.loads(text)


class InboundMessage(BaseModel):
    type: Literal["message"]
    content: str


class InboundReset(BaseModel):
    type: Literal["reset"]


InboundEvent = Annotated[InboundMessage | InboundReset, Field(discriminator="type")]

inbound_event_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


class WebSocketSubscriber:
    """Adapts a WebSocket to the non-blocking ``Subscriber`` contract.

    ``send`` enqueues; a writer task drains the queue onto the socket. A closed
    socket or a full queue makes ``send`` raise ``DeliveryError``.
    """

    def __init__(self, websocket: WebSocket, *, max_queue_size: int = 256) -> None:
        self._websocket = websocket
        self._queue: asyncio.Queue[WireModel | object] = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: WireModel) -> None:
        if self._closed:
            raise DeliveryError("connection closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as exc:
            raise DeliveryError("send queue full") from exc

    async def pump(self) -> None:
        while True:
            item = await self._queue.get()
            if item is _CLOSE or not isinstance(item, WireModel):
                break
            try:
                await self._websocket.send_json(item.to_payload())
            except Exception as exc:
                logger.debug("websocket_send_failed", extra={"error": repr(exc)})
                self._closed = True
                break

    def close(self) -> None:
        self._closed = True
        with suppress(asyncio.QueueFull):
            self._queue.put_nowait(_CLOSE)


class Gateway:
    """Routes inbound WebSocket documents to coordinators."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        self._submissions: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def handle(self, websocket: WebSocket, session_id: str | None) -> None:
        session_id = session_id or str(uuid.uuid4())
        await websocket.accept()
        config = self._registry.config
        coordinator = await self._registry.resolve_or_create(session_id)
        subscriber = WebSocketSubscriber(websocket, max_queue_size=config.send_queue_size)
        writer = asyncio.create_task(subscriber.pump(), name=f"ws-writer:{session_id}")
        coordinator.subscribe(subscriber)
        logger.info("websocket_connected", extra={"session_id": session_id})
        try:
            while True:
                try:
                    frame = await websocket.receive()
                except WebSocketDisconnect:
                    break
                if frame["type"] == "websocket.disconnect":
                    break
                try:
                    raw = _decode_frame(frame)
                except ValueError:
                    self._reply(subscriber, ErrorEvent(error="Invalid JSON payload", session_id=session_id))
                    continue
                self._dispatch(subscriber, session_id, raw)
        finally:
            await self._registry.detach(session_id, subscriber)
            subscriber.close()
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer
            logger.info("websocket_disconnected", extra={"session_id": session_id})

    def _dispatch(self, subscriber: WebSocketSubscriber, session_id: str, raw: Any) -> None:
        try:
            inbound = inbound_event_adapter.validate_python(raw)
        except ValidationError as exc:
            self._reply(
                subscriber,
                ErrorEvent(error=f"Invalid message: {exc.error_count()} validation error(s)", session_id=session_id),
            )
            return

        coordinator = self._registry.get(session_id)
        if coordinator is None:
            self._reply(subscriber, ErrorEvent(error=SessionNotFoundError(session_id).message, session_id=session_id))
            return

        if isinstance(inbound, InboundReset):
            coordinator.reset()
            self._reply(subscriber, SystemNotice(message="Conversation reset", session_id=session_id))
            return

        task = asyncio.create_task(
            self._submit(subscriber, session_id, inbound.content),
            name=f"submit:{session_id}",
        )
        self._submissions.add(task)
        task.add_done_callback(self._submissions.discard)

    async def _submit(self, subscriber: WebSocketSubscriber, session_id: str, content: str) -> None:
        coordinator = self._registry.get(session_id)
        try:
            if coordinator is None:
                raise SessionNotFoundError(session_id)
            await coordinator.submit_message(content)
        except ConvoflowError as exc:
            self._reply(subscriber, ErrorEvent(error=exc.message, session_id=session_id))

    async def drain(self) -> None:
        """Wait for submissions still running after their sockets closed."""

        pending = list(self._submissions)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    @staticmethod
    def _reply(subscriber: WebSocketSubscriber, event: WireModel) -> None:
        try:
            subscriber.send(event)
        except DeliveryError:
            logger.debug("reply_dropped", extra={"event_type": getattr(event, "type", None)})


def create_app(
    registry: SessionRegistry,
    *,
    title: str = "convoflow",
    include_docs: bool = True,
) -> FastAPI:
    """Create a FastAPI app serving ``/ws`` and ``/health`` for ``registry``."""

    gateway = Gateway(registry)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await registry.start()
        try:
            yield
        finally:
            await gateway.drain()
            await registry.shutdown()

    app = FastAPI(
        title=title,
        docs_url="/docs" if include_docs else None,
        openapi_url="/openapi.json" if include_docs else None,
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "activeSessions": registry.active_count}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, session: str | None = None) -> None:
        await gateway.handle(websocket, session)

    return app


__all__ = [
    "Gateway",
    "InboundMessage",
    "InboundReset",
    "WebSocketSubscriber",
    "create_app",
    "inbound_event_adapter",
]
