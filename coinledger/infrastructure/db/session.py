"""
Database session management (SQLAlchemy over embedded SQLite)
"""
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from coinledger.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


# Singleton engine and session factory
_engine = None
_SessionLocal = None


def _configure_sqlite(engine: Engine) -> None:
    """WAL journal (concurrent readers, one writer) and a busy timeout for writers."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def create_db_engine(url: str) -> Engine:
    """Create an engine; sqlite URLs get the pragmas above."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
    if url.startswith("sqlite"):
        _configure_sqlite(engine)
    return engine


def get_engine():
    """Get or create SQLAlchemy engine (singleton)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_db_engine(settings.get_sqlalchemy_url())
    return _engine


def get_session_factory():
    """Get or create session factory (singleton)"""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Session:
    """
    FastAPI dependency - opens a session and always closes it

    Usage:
        @router.get("/api/transactions")
        def list_transactions(db: Session = Depends(get_db)):
            ...
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create missing tables (idempotent)"""
    from coinledger.infrastructure.db import models  # noqa: F401  registers tables

    Base.metadata.create_all(bind=get_engine())


def checkpoint_wal() -> None:
    """
    Fold the WAL file back into the main database file

    No-op for non-sqlite engines.
    """
    engine = get_engine()
    if engine.dialect.name != "sqlite":
        return
    with engine.connect() as conn:
        row = conn.execute(text("PRAGMA wal_checkpoint(TRUNCATE)")).fetchone()
        logger.info("WAL checkpoint: %s", tuple(row) if row is not None else None)


def check_db_connection() -> None:
    """
    Health check - database reachable

    Raises:
        sqlalchemy.exc.OperationalError: if the database is unavailable
    """
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))
