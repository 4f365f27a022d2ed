from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from convoflow.config import SessionConfig
from convoflow.gateway import create_app
from convoflow.sessions import InMemorySessionStore, SessionRegistry, SqliteSessionStore
from convoflow.testkit import EchoQueryEngine


def _app(store=None):
    registry = SessionRegistry(
        engine=EchoQueryEngine(),
        store=store or InMemorySessionStore(),
        config=SessionConfig(idle_timeout_s=60.0),
    )
    return create_app(registry, include_docs=False), registry


def test_connect_receives_session_info() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            assert ws.receive_json() == {
                "type": "session_info",
                "sessionId": "s1",
                "messageCount": 0,
                "isActive": False,
            }


def test_connect_without_session_generates_identifier() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            info = ws.receive_json()
    assert info["type"] == "session_info"
    assert len(info["sessionId"]) == 36


def test_message_streams_turn_events() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "hello"})

            assert ws.receive_json() == {
                "type": "assistant_message",
                "content": "echo: hello",
                "sessionId": "s1",
            }
            assert ws.receive_json() == {
                "type": "result",
                "success": True,
                "result": "echo: hello",
                "cost": 0.0,
                "durationMs": 0,
                "sessionId": "s1",
            }


def test_all_connections_see_identical_sequences() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=shared") as first:
            first.receive_json()
            with client.websocket_connect("/ws?session=shared") as second:
                second.receive_json()
                first.send_json({"type": "message", "content": "one"})

                seen_first = [first.receive_json() for _ in range(2)]
                seen_second = [second.receive_json() for _ in range(2)]

    assert seen_first == seen_second
    assert [event["type"] for event in seen_first] == ["assistant_message", "result"]


def test_reset_is_acknowledged_to_sender() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()
            ws.send_json({"type": "reset"})
            assert ws.receive_json() == {
                "type": "system",
                "message": "Conversation reset",
                "sessionId": "s1",
            }


def test_invalid_documents_are_reported() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()

            ws.send_json({"type": "bogus"})
            invalid = ws.receive_json()
            ws.send_text("not json")
            malformed = ws.receive_json()

    assert invalid["type"] == "error"
    assert invalid["error"].startswith("Invalid message")
    assert malformed == {"type": "error", "error": "Invalid JSON payload", "sessionId": "s1"}


def test_health_reports_active_sessions() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok", "activeSessions": 0}
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()
            assert client.get("/health").json() == {"status": "ok", "activeSessions": 1}


def test_turn_is_persisted(tmp_path: Path) -> None:
    db_path = tmp_path / "sessions.db"
    app, _ = _app(store=SqliteSessionStore(db_path=db_path))
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "hello"})
            ws.receive_json()
            ws.receive_json()

    record = SqliteSessionStore(db_path=db_path).get("s1")
    assert record is not None
    assert record.message_count == 1
    assert record.continuation_token is not None


def test_reconnect_reports_message_count() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()
            ws.send_json({"type": "message", "content": "hello"})
            ws.receive_json()
            ws.receive_json()
        with client.websocket_connect("/ws?session=s1") as ws:
            info = ws.receive_json()

    assert info["messageCount"] == 1


def test_binary_frames_are_decoded_or_rejected() -> None:
    app, _ = _app()
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            ws.receive_json()

            ws.send_bytes(b'{"type": "message", "content": "bytes"}')
            assistant = ws.receive_json()
            ws.receive_json()
            ws.send_bytes(b"\xff\xfe")
            rejected = ws.receive_json()
            ws.send_json({"type": "reset"})
            ack = ws.receive_json()

    assert assistant["content"] == "echo: bytes"
    assert rejected == {"type": "error", "error": "Invalid JSON payload", "sessionId": "s1"}
    assert ack["type"] == "system"


def test_app_survives_a_second_lifespan(tmp_path: Path) -> None:
    app, _ = _app(store=SqliteSessionStore(db_path=tmp_path / "sessions.db"))
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
    with TestClient(app) as client:
        with client.websocket_connect("/ws?session=s1") as ws:
            assert ws.receive_json()["type"] == "session_info"
