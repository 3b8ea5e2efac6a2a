"""
Trust-anchor transfer (`!active <cardHash> <targetId> <amount>`)

A lower-trust entry point: the caller proves nothing but knowledge of a card
hash. Replies are plaintext `<ownerId>:true|false`; malformed or unknown input
answers with the mint id.
"""
import logging
from decimal import Decimal, InvalidOperation

from coinledger.application.transfers import TransferUseCase
from coinledger.domain.errors import InsufficientFunds, LedgerError
from coinledger.domain.ledger import MINT_ID
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import truncate_to_minor_units
from coinledger.utils.validation import is_card_hash

logger = logging.getLogger(__name__)


def _reply(owner_id: str, ok: bool) -> str:
    return f"{owner_id}:{'true' if ok else 'false'}"


def parse_truncated_amount(value: str) -> int:
    """
    Coins -> sats, dropping digits past the 8th

    Returns:
        sats, or 0 when the value is malformed or not positive
    """
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            return 0
        return max(0, truncate_to_minor_units(amount))
    except (InvalidOperation, ValueError):
        return 0


class TrustAnchorTransferUseCase:
    """
    Example:
        >>> TrustAnchorTransferUseCase(store).execute(card_hash, "456", "0.5")
        "123:true"
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, code_hash: str, target_id: str, amount: str) -> str:
        if not is_card_hash(code_hash) or not target_id:
            return _reply(MINT_ID, False)

        sats = parse_truncated_amount(amount)
        if sats <= 0:
            return _reply(MINT_ID, False)

        owner_id = self.store.resolve_card_owner_by_hash(code_hash)
        if owner_id is None:
            return _reply(MINT_ID, False)

        try:
            TransferUseCase(self.store).execute(owner_id, target_id, sats)
        except InsufficientFunds:
            return _reply(owner_id, False)
        except LedgerError:
            logger.exception("Trust-anchor transfer from %s failed", owner_id)
            return _reply(owner_id, False)
        return _reply(owner_id, True)
