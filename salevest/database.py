# salevest/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from salevest.core.config import settings
from salevest.models import Base

logger = logging.getLogger(__name__)

_engine = None
_SessionLocal = None


def _normalize_url(url: str) -> str:
    # Railway/Heroku hand out postgres://; SQLAlchemy expects postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy own BEGIN on pysqlite so SAVEPOINT behaves.

    Every mutating operation runs inside ``Session.begin_nested()``; the
    stock pysqlite driver defers BEGIN and breaks nested transactions.
    """

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str) -> Engine:
    url = _normalize_url(url)
    if not url:
        raise RuntimeError("DATABASE_URL is not set")

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "future": True}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(url, pool_pre_ping=True, future=True)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def get_engine():
    global _engine, _SessionLocal
    if _engine is None:
        _engine = make_engine(settings.DATABASE_URL)
        _SessionLocal = make_sessionmaker(_engine)
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        get_engine()
    return _SessionLocal


@contextmanager
def db_session(session_factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    SessionLocal = session_factory or get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db(session_factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    with db_session(session_factory) as db:
        yield db


def init_db(engine: Engine | None = None) -> None:
    """Create missing tables/indexes (idempotent)."""
    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Schema ensured on %s", engine.url.render_as_string(hide_password=True))
