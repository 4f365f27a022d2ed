"""convoflow command-line interface."""

from __future__ import annotations

import importlib
import logging
import sys
from typing import Any

import click

from convoflow.config import DEFAULT_ENGINE, ServerConfig, SessionConfig

logger = logging.getLogger("convoflow.cli")


class CLIError(Exception):
    """Raised for user-facing CLI failures."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


def load_engine(spec: str) -> Any:
    """Import ``module:attribute`` and return an engine instance.

    Classes and zero-argument factories are called; anything else exposing a
    ``query`` method is used as-is.
    """

    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise CLIError(f"Invalid engine '{spec}'", hint="Use the form 'package.module:attribute'.")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise CLIError(f"Cannot import '{module_name}': {exc}") from exc
    target = getattr(module, attr, None)
    if target is None:
        raise CLIError(f"'{module_name}' has no attribute '{attr}'")
    if isinstance(target, type) or (callable(target) and not hasattr(target, "query")):
        engine = target()
    else:
        engine = target
    if isinstance(engine, type) or not callable(getattr(engine, "query", None)):
        raise CLIError(f"'{spec}' did not produce an engine with a query() method")
    return engine


def run_server(config: ServerConfig, *, log_level: str = "info") -> None:
    import uvicorn

    from convoflow.gateway import create_app
    from convoflow.sessions import SessionRegistry, SqliteSessionStore

    engine = load_engine(config.engine)
    registry = SessionRegistry(
        engine=engine,
        store=SqliteSessionStore(db_path=config.db_path),
        config=config.session,
    )
    app = create_app(registry)
    logger.info(
        "server_starting",
        extra={"host": config.host, "port": config.port, "db_path": config.db_path, "engine": config.engine},
    )
    server = uvicorn.Server(uvicorn.Config(app, host=config.host, port=config.port, log_level=log_level))
    server.run()


@click.group()
@click.version_option(package_name="convoflow")
def app() -> None:
    """convoflow CLI - serve multi-subscriber agent sessions."""


@app.command()
@click.option("--host", default=None, help="Interface to bind (env: CONVOFLOW_HOST).")
@click.option("--port", type=int, default=None, help="Port to listen on (env: CONVOFLOW_PORT).")
@click.option(
    "--db-path",
    type=click.Path(dir_okay=False, path_type=str),
    default=None,
    help="SQLite file holding session records (env: CONVOFLOW_DB_PATH).",
)
@click.option(
    "--engine",
    default=None,
    help=f"Agent query engine as 'module:attribute' (default: {DEFAULT_ENGINE}).",
)
@click.option(
    "--idle-timeout",
    type=float,
    default=None,
    help="Seconds a session may sit without subscribers before eviction.",
)
@click.option(
    "--purge-on-evict",
    is_flag=True,
    help="Delete the durable record when a session is evicted.",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    show_default=True,
)
def serve(
    host: str | None,
    port: int | None,
    db_path: str | None,
    engine: str | None,
    idle_timeout: float | None,
    purge_on_evict: bool,
    log_level: str,
) -> None:
    """Run the WebSocket session gateway."""

    logging.getLogger("convoflow").setLevel(log_level.upper())
    try:
        base = ServerConfig.from_env()
        session = SessionConfig(
            idle_timeout_s=idle_timeout if idle_timeout is not None else base.session.idle_timeout_s,
            purge_on_evict=purge_on_evict or base.session.purge_on_evict,
            send_queue_size=base.session.send_queue_size,
        )
        config = ServerConfig(
            host=host or base.host,
            port=port or base.port,
            db_path=db_path or base.db_path,
            engine=engine or base.engine,
            session=session,
        )
        run_server(config, log_level=log_level.lower())
    except ValueError as exc:
        click.echo(f"✗ {exc}", err=True)
        sys.exit(1)
    except CLIError as e:
        click.echo(f"✗ {e.message}", err=True)
        if e.hint:
            click.echo(f"  Hint: {e.hint}", err=True)
        sys.exit(1)


__all__ = ["CLIError", "app", "load_engine", "run_server"]
