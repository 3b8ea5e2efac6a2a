"""
Economy statistics (rank, global totals)
"""
from typing import Any, Dict

from coinledger.domain.ledger import MINT_ID
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import from_minor_units

RANK_SIZE = 25


def rank(store: LedgerStore, limit: int = RANK_SIZE) -> Dict[str, Any]:
    return {
        "totalCoins": from_minor_units(store.total_balance()),
        "rankings": [
            {"id": user.id, "username": user.username or "none", "coins": from_minor_units(user.balance)}
            for user in store.top_balances(limit)
        ],
    }


def global_stats(store: LedgerStore) -> Dict[str, Any]:
    """
    Totals across the ledger

    In a consistent ledger totalCoins == totalMinted.
    """
    return {
        "totalCoins": from_minor_units(store.total_balance()),
        "totalMinted": from_minor_units(store.total_minted()),
        "users": store.count_users(),
        "transactions": store.count_transactions(),
        "claims": store.count_transactions(from_id=MINT_ID),
        "bills": store.count_bills(),
    }
