"""
Remove duplicate transaction rows (same timestamp, amount, from_id, to_id)

Usage:
    python dedup_transactions.py [userId]
"""
import sys

from coinledger.application.transactions import DeduplicateTransactionsUseCase
from coinledger.infrastructure.db.session import get_db
from coinledger.infrastructure.ledger.store import LedgerStore

user_id = sys.argv[1] if len(sys.argv) > 1 else None

db = next(get_db())
store = LedgerStore(db)

print("=== TRANSACTION DEDUP ===")
print(f"Scope: {user_id or 'all users'}")

removed = DeduplicateTransactionsUseCase(store).execute(user_id)
print(f"✓ Removed rows: {removed}")
print(f"✓ Remaining rows: {store.count_transactions()}")

db.close()
