# src/mq_planner/db/__init__.py
"""Engine, session factory and per-query logging for the queue database.

Settings come from the environment at import time:

    DATABASE_URL   SQLAlchemy URL (default: sqlite file in the working dir)
    SQL_ECHO       "1" turns on SQLAlchemy's own echo
    DB_LOG         off | summary | sql | full
                   summary: op, rowcount and duration per statement
                   sql:     statement text with trimmed parameters
                   full:    both, plus driver errors
"""
from __future__ import annotations

import contextvars
import logging
import os
import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mq_planner.db")
IS_SQLITE = DATABASE_URL.startswith("sqlite")

DB_LOG = os.getenv("DB_LOG", "off").strip().lower()
_LOG_MODES = {
    "off": (),
    "summary": ("summary", "errors"),
    "sql": ("sql", "errors"),
    "full": ("summary", "sql", "errors"),
}
_log_flags = set(_LOG_MODES.get(DB_LOG, ()))

sql_logger = logging.getLogger("mq_planner.sql")
if _log_flags:
    sql_logger.setLevel(logging.INFO)

# request id stamped on every SQL log line; set by the API middleware
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("mq_request_id", default="-")


def set_request_id(rid: str) -> None:
    _request_id.set(str(rid))


def get_request_id() -> str:
    return _request_id.get()


def _trim(params, limit: int = 120):
    if params is None:
        return None
    if isinstance(params, dict):
        return {k: str(v)[:limit] for k, v in params.items()}
    if isinstance(params, (list, tuple)):
        return [str(v)[:limit] for v in params]
    return str(params)[:limit]


engine: Engine = create_engine(
    DATABASE_URL,
    echo=os.getenv("SQL_ECHO", "0") == "1",
    pool_pre_ping=True,
    connect_args={"check_same_thread": False, "timeout": 60} if IS_SQLITE else {},
)

if IS_SQLITE:

    @event.listens_for(engine, "connect")
    def _sqlite_on_connect(dbapi_conn, _record):
        # pysqlite opens transactions lazily and breaks SAVEPOINT; BEGIN is emitted below
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        for pragma in (
            "PRAGMA foreign_keys=ON",
            "PRAGMA journal_mode=WAL",
            "PRAGMA synchronous=NORMAL",
            "PRAGMA busy_timeout=60000",
        ):
            cur.execute(pragma)
        cur.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


@event.listens_for(engine, "before_cursor_execute")
def _before_execute(conn, cursor, statement, parameters, context, executemany):
    if not _log_flags:
        return
    conn.info.setdefault("mq_t0", []).append(time.perf_counter())
    if "sql" in _log_flags:
        sql_logger.info("[%s] %s | params=%s", _request_id.get(), statement, _trim(parameters))


@event.listens_for(engine, "after_cursor_execute")
def _after_execute(conn, cursor, statement, parameters, context, executemany):
    if not _log_flags:
        return
    started = conn.info.get("mq_t0") or []
    t0 = started.pop() if started else None
    if "summary" in _log_flags:
        op = (statement or "SQL").lstrip().split(None, 1)[0].upper()
        elapsed = (time.perf_counter() - t0) * 1000 if t0 else 0.0
        sql_logger.info("[%s] %s rows=%s %.2fms", _request_id.get(), op, getattr(cursor, "rowcount", None), elapsed)


@event.listens_for(engine, "handle_error")
def _on_error(context):  # pragma: no cover
    if "errors" in _log_flags:
        sql_logger.warning(
            "[%s] db error: %s | %s | params=%s",
            _request_id.get(),
            context.original_exception,
            context.statement,
            _trim(context.parameters),
        )


SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def init_db() -> None:
    """Create missing tables."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_db() -> None:
    from . import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Short-lived unit of work: commit on success, rollback on error."""
    s = SessionLocal()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()
