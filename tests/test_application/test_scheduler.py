"""
Tests for the scheduler job wrappers (jobs run against the test engine)
"""
import pytest
from sqlalchemy.orm import sessionmaker

from coinledger.application import scheduler
from coinledger.infrastructure.db import session as db_session_module
from coinledger.infrastructure.db.models import Bill


@pytest.fixture
def job_sessions(db_engine, monkeypatch):
    factory = sessionmaker(bind=db_engine, autoflush=False)
    monkeypatch.setattr(db_session_module, "get_session_factory", lambda: factory)
    return factory


def test_bill_sweep_job(job_sessions, store, db_session):
    with store.atomic():
        store.create_bill("stale", "", "payee", 10, 1)

    scheduler._run_bill_sweep()

    db_session.expire_all()
    assert db_session.get(Bill, "stale") is None


def test_job_failure_is_logged_not_raised(job_sessions, caplog):
    def broken(store):
        raise RuntimeError("boom")

    scheduler._run_with_store("Broken", broken)
    assert "Broken job failed" in caplog.text


def test_start_registers_all_jobs(monkeypatch):
    monkeypatch.setattr(scheduler.scheduler, "start", lambda: None)
    scheduler.start_scheduler()
    try:
        ids = {job.id for job in scheduler.scheduler.get_jobs()}
    finally:
        scheduler.scheduler.remove_all_jobs()
    assert ids == {
        "bill_sweep", "session_cleanup", "transaction_maintenance", "ip_cleanup",
        "wal_checkpoint", "dm_drain", "claim_reminders",
    }
