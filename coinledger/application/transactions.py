"""
Transaction read models and maintenance (history, lookup, dedup, retention)
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from coinledger.config import get_settings
from coinledger.domain.errors import NotFound
from coinledger.infrastructure.db.models import Transaction
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import from_minor_units

logger = logging.getLogger(__name__)


def serialize_transaction(tx: Transaction) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "date": tx.timestamp,
        "from_id": tx.from_id,
        "to_id": tx.to_id,
        "amount": from_minor_units(tx.amount),
    }


def list_transactions(store: LedgerStore, user_id: str, page: int = 1, page_size: int | None = None) -> List[Dict[str, Any]]:
    """Page of the user's history, newest first"""
    page_size = page_size or get_settings().TX_PAGE_SIZE
    return [serialize_transaction(tx) for tx in store.list_transactions(user_id, page=page, page_size=page_size)]


def lookup_transaction(store: LedgerStore, tx_id: str) -> Dict[str, Any]:
    """
    Raises:
        NotFound: unknown id
    """
    tx = store.get_transaction(tx_id) if tx_id else None
    if tx is None:
        raise NotFound("Transaction not found")
    data = serialize_transaction(tx)
    data["amountSats"] = tx.amount
    return data


class DeduplicateTransactionsUseCase:
    """
    Maintenance: drop rows duplicating (timestamp, amount, from_id, to_id)

    Idempotent; normal transfers write a single row so this usually removes nothing.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, user_id: str | None = None) -> int:
        with self.store.atomic():
            removed = self.store.deduplicate_transactions(user_id)
        if removed:
            logger.warning("Removed %s duplicate transaction rows (scope=%s)", removed, user_id or "global")
        return removed


class PruneTransactionsUseCase:
    """Maintenance: delete history older than TX_RETENTION_DAYS (0 disables)"""

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, retention_days: int | None = None) -> int:
        retention_days = get_settings().TX_RETENTION_DAYS if retention_days is None else retention_days
        if retention_days <= 0:
            return 0
        cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
        cutoff_iso = cutoff.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        with self.store.atomic():
            removed = self.store.prune_transactions_before(cutoff_iso)
        logger.info("Pruned %s transactions older than %s", removed, cutoff_iso)
        return removed
