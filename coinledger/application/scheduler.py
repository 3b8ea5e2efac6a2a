"""
Background scheduler - runs periodic ledger jobs inside the API process.

Jobs:
  - Expired bill sweep (every 10 minutes)
  - Session cleanup (every 5 minutes)
  - Transaction maintenance: dedup + retention prune (every hour)
  - IP throttle record cleanup (every 10 minutes)
  - WAL checkpoint (every 30 minutes)
  - DM queue drain (every 5 seconds)
  - Claim reminders (every 5 minutes)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_with_store(job_name: str, work) -> None:
    """Open a session, run work(store), log failures, always close"""
    from coinledger.infrastructure.db.session import get_session_factory
    from coinledger.infrastructure.ledger.store import LedgerStore

    Session = get_session_factory()
    db = Session()
    try:
        work(LedgerStore(db))
    except Exception:
        logger.exception("%s job failed", job_name)
    finally:
        db.close()


def _run_bill_sweep():
    from coinledger.application.bills import SweepExpiredBillsUseCase

    _run_with_store("Bill sweep", lambda store: SweepExpiredBillsUseCase(store).execute())


def _run_session_cleanup():
    from coinledger.application.accounts import SessionUseCase

    _run_with_store("Session cleanup", lambda store: SessionUseCase(store).cleanup())


def _run_transaction_maintenance():
    from coinledger.application.transactions import DeduplicateTransactionsUseCase, PruneTransactionsUseCase

    def work(store):
        DeduplicateTransactionsUseCase(store).execute()
        PruneTransactionsUseCase(store).execute()

    _run_with_store("Transaction maintenance", work)


def _run_ip_cleanup():
    from coinledger.application.accounts import CleanupIpRecordsUseCase

    _run_with_store("IP cleanup", lambda store: CleanupIpRecordsUseCase(store).execute())


def _run_wal_checkpoint():
    from coinledger.infrastructure.db.session import checkpoint_wal

    try:
        checkpoint_wal()
    except Exception:
        logger.exception("WAL checkpoint job failed")


def _run_dm_drain():
    from coinledger.application.notifications import drain_dm_queue

    _run_with_store("DM drain", lambda store: drain_dm_queue(store.db))


def _run_claim_reminders():
    from coinledger.application.claims import ClaimReminderUseCase

    _run_with_store("Claim reminders", lambda store: ClaimReminderUseCase(store).execute())


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    scheduler.add_job(_run_bill_sweep, "interval", minutes=10, id="bill_sweep", replace_existing=True)
    scheduler.add_job(_run_session_cleanup, "interval", minutes=5, id="session_cleanup", replace_existing=True)
    scheduler.add_job(
        _run_transaction_maintenance,
        "interval",
        hours=1,
        id="transaction_maintenance",
        replace_existing=True,
    )
    scheduler.add_job(_run_ip_cleanup, "interval", minutes=10, id="ip_cleanup", replace_existing=True)
    scheduler.add_job(_run_wal_checkpoint, "interval", minutes=30, id="wal_checkpoint", replace_existing=True)
    # max_instances=1 plus the drain's own lock: overlapping drains are skipped
    scheduler.add_job(
        _run_dm_drain,
        "interval",
        seconds=5,
        id="dm_drain",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(_run_claim_reminders, "interval", minutes=5, id="claim_reminders", replace_existing=True)

    scheduler.start()
    logger.info(
        "Scheduler started: bill_sweep (10 min), session_cleanup (5 min), transaction_maintenance (1 h), "
        "ip_cleanup (10 min), wal_checkpoint (30 min), dm_drain (5 s), claim_reminders (5 min)"
    )


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
