from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_IDLE_TIMEOUT_S = 60.0
DEFAULT_ENGINE = "convoflow.testkit:EchoQueryEngine"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class SessionConfig:
    idle_timeout_s: float = DEFAULT_IDLE_TIMEOUT_S
    purge_on_evict: bool = False
    send_queue_size: int = 256

    def __post_init__(self) -> None:
        if self.idle_timeout_s < 0:
            raise ValueError("idle_timeout_s must be >= 0")
        if self.send_queue_size <= 0:
            raise ValueError("send_queue_size must be positive")


@dataclass(slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    db_path: str = "sessions.db"
    engine: str = DEFAULT_ENGINE
    session: SessionConfig = field(default_factory=SessionConfig)

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if ":" not in self.engine:
            raise ValueError("engine must be given as 'module:attribute'")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """Build a config from ``CONVOFLOW_*`` environment variables."""

        env = os.environ if environ is None else environ
        session = SessionConfig(
            idle_timeout_s=float(env.get("CONVOFLOW_IDLE_TIMEOUT_S", DEFAULT_IDLE_TIMEOUT_S)),
            purge_on_evict=env.get("CONVOFLOW_PURGE_ON_EVICT", "").strip().lower() in _TRUTHY,
        )
        return cls(
            host=env.get("CONVOFLOW_HOST", "0.0.0.0"),
            port=int(env.get("CONVOFLOW_PORT", 3000)),
            db_path=env.get("CONVOFLOW_DB_PATH", "sessions.db"),
            engine=env.get("CONVOFLOW_ENGINE", DEFAULT_ENGINE),
            session=session,
        )


__all__ = ["DEFAULT_ENGINE", "DEFAULT_IDLE_TIMEOUT_S", "ServerConfig", "SessionConfig"]
