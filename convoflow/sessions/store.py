"""Durable storage for session records."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from convoflow.errors import PersistenceError

from .models import SessionRecord, now_ms


class SessionMetadataStore(Protocol):
    def init_schema(self) -> None: ...

    def insert_if_absent(self, session_id: str) -> None: ...

    def update(
        self,
        session_id: str,
        *,
        continuation_token: str | None,
        last_active_at: int,
        message_count: int,
    ) -> None: ...

    def get(self, session_id: str) -> SessionRecord | None: ...

    def delete(self, session_id: str) -> None: ...

    def close(self) -> None: ...


class InMemorySessionStore:
    """Process-local store, mostly useful for tests and ephemeral servers."""

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}

    def init_schema(self) -> None:
        return None

    def insert_if_absent(self, session_id: str) -> None:
        if session_id not in self._records:
            self._records[session_id] = SessionRecord(id=session_id)

    def update(
        self,
        session_id: str,
        *,
        continuation_token: str | None,
        last_active_at: int,
        message_count: int,
    ) -> None:
        existing = self._records.get(session_id)
        created_at = existing.created_at if existing is not None else last_active_at
        self._records[session_id] = SessionRecord(
            id=session_id,
            continuation_token=continuation_token,
            created_at=created_at,
            last_active_at=last_active_at,
            message_count=message_count,
        )

    def get(self, session_id: str) -> SessionRecord | None:
        record = self._records.get(session_id)
        return record.model_copy() if record is not None else None

    def delete(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    def close(self) -> None:
        return None


_COLUMNS = "id, continuation_token, created_at, last_active_at, message_count"


class SqliteSessionStore:
    """SQLite-backed store with one row per session."""

    def __init__(self, *, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._schema_ready = False
        self._closed = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def init_schema(self) -> None:
        """Create the table if needed; also reopens a store after ``close()``."""

        self._closed = False
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect("init_schema", None) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    continuation_token TEXT,
                    created_at INTEGER NOT NULL,
                    last_active_at INTEGER NOT NULL,
                    message_count INTEGER NOT NULL DEFAULT 0
                )
                """
            )
        self._schema_ready = True

    def insert_if_absent(self, session_id: str) -> None:
        now = now_ms()
        with self._connect("insert_if_absent", session_id) as conn:
            conn.execute(
                f"INSERT OR IGNORE INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (session_id, None, now, now, 0),
            )

    def update(
        self,
        session_id: str,
        *,
        continuation_token: str | None,
        last_active_at: int,
        message_count: int,
    ) -> None:
        with self._connect("update", session_id) as conn:
            conn.execute(
                f"""
                INSERT INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    continuation_token = excluded.continuation_token,
                    last_active_at = excluded.last_active_at,
                    message_count = excluded.message_count
                """,
                (session_id, continuation_token, last_active_at, last_active_at, message_count),
            )

    def get(self, session_id: str) -> SessionRecord | None:
        with self._connect("get", session_id) as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        return SessionRecord(
            id=str(row[0]),
            continuation_token=row[1],
            created_at=int(row[2]),
            last_active_at=int(row[3]),
            message_count=int(row[4] or 0),
        )

    def delete(self, session_id: str) -> None:
        with self._connect("delete", session_id) as conn:
            conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))

    def close(self) -> None:
        self._closed = True

    @contextmanager
    def _connect(self, operation: str, session_id: str | None) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise PersistenceError(operation, session_id, "store is closed")
        if not self._schema_ready and operation != "init_schema":
            self.init_schema()
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(operation, session_id, str(exc)) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(operation, session_id, str(exc)) from exc
        finally:
            conn.close()


__all__ = ["InMemorySessionStore", "SessionMetadataStore", "SqliteSessionStore"]
