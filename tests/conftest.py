"""
Pytest fixtures for testing
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from coinledger.infrastructure.db.session import Base
from coinledger.infrastructure.db import models  # noqa: F401  registers tables
from coinledger.infrastructure.ledger.store import LedgerStore


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every connection of the test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite (WAL, busy timeout) so several connections really contend"""
    from coinledger.infrastructure.db.session import create_db_engine

    engine = create_db_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def store(db_session) -> LedgerStore:
    return LedgerStore(db_session)


@pytest.fixture
def funded(store):
    """Create an account with a balance: funded("u1", 100)"""
    def _funded(user_id: str, balance: int):
        with store.atomic():
            store.set_balance(user_id, balance)
        return user_id
    return _funded


@pytest.fixture
def sample_user_id():
    """Sample platform user id (Discord snowflake shaped)"""
    return "111111111111111111"


@pytest.fixture
def no_transfer_throttle(monkeypatch):
    from coinledger.config import get_settings

    monkeypatch.setattr(get_settings(), "TRANSFER_MIN_INTERVAL_MS", 0)


@pytest.fixture
def client(db_engine, monkeypatch):
    """TestClient with get_db bound to the test engine (no lifespan: scheduler stays off, no rate limit)"""
    from coinledger.api.deps import get_db
    from coinledger.api.rate_limit import limiter
    from coinledger.config import get_settings
    from coinledger.main import app

    limiter.reset()
    monkeypatch.setattr(get_settings(), "RATE_LIMIT_BURST", 0)

    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)

    def _override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
