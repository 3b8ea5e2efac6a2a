"""
Identifier generation with explicit collision probing

uuid4 collisions are practically impossible, but every generator checks the
store before handing an id out so uniqueness does not rest on luck.
"""
import hashlib
import secrets
import uuid

from coinledger.infrastructure.ledger.store import LedgerStore

MAX_PROBES = 32


class IdentifierExhausted(RuntimeError):
    """No free identifier found within MAX_PROBES attempts"""
    pass


def _probe(generate, taken) -> str:
    for _ in range(MAX_PROBES):
        candidate = generate()
        if not taken(candidate):
            return candidate
    raise IdentifierExhausted("Could not generate an unused identifier")


def new_transaction_id(store: LedgerStore) -> str:
    return _probe(lambda: str(uuid.uuid4()), store.transaction_exists)


def new_bill_id(store: LedgerStore) -> str:
    """
    Bill ids double as the settling transaction's id, so both tables are probed
    """
    return _probe(
        lambda: str(uuid.uuid4()),
        lambda candidate: store.bill_exists(candidate) or store.transaction_exists(candidate),
    )


def new_backup_code() -> str:
    """24 hex chars; uniqueness is enforced by the insert itself"""
    return secrets.token_hex(12)


def new_card_code(store: LedgerStore) -> str:
    return _probe(lambda: secrets.token_hex(16), store.card_code_exists)


def card_hash(code: str) -> str:
    """sha256 hex of a card code (what the trust-anchor flow presents)"""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def new_numeric_user_id(exists, length: int = 18) -> str:
    """
    Random numeric account id for HTTP-registered users

    Args:
        exists: callable(candidate) -> bool
    """
    return _probe(lambda: "".join(secrets.choice("0123456789") for _ in range(length)), exists)
