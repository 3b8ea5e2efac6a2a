"""
Card use cases - bearer card codes (and their sha256) mapped to an owner
"""
import logging
from typing import Any, Dict

from coinledger.application.claims import ClaimUseCase
from coinledger.application.transfers import TransferUseCase
from coinledger.config import get_settings
from coinledger.domain.errors import InvalidAmount, Unauthorized
from coinledger.domain.ledger import TransferResult
from coinledger.infrastructure.ledger.identifiers import card_hash, new_card_code
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import from_minor_units

logger = logging.getLogger(__name__)


class CardService:
    """
    One active card per owner; issuing a new card invalidates the previous one

    Example:
        >>> cards = CardService(store)
        >>> code = cards.get_or_create("123")
        >>> cards.resolve_owner(code)
        "123"
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def get_or_create(self, owner_id: str) -> str:
        code = self.store.get_card_code(owner_id)
        if code:
            return code
        return self.reset(owner_id)

    def reset(self, owner_id: str) -> str:
        """Issue a fresh card, dropping the old one"""
        with self.store.atomic():
            code = new_card_code(self.store)
            self.store.replace_card(owner_id, code, card_hash(code))
        logger.info("Card issued for %s", owner_id)
        return code

    def resolve_owner(self, code: str) -> str | None:
        if not code:
            return None
        return self.store.resolve_card_owner(code)

    def resolve_owner_by_hash(self, code_hash: str) -> str | None:
        if not code_hash:
            return None
        return self.store.resolve_card_owner_by_hash(code_hash)

    def require_owner(self, code: str) -> str:
        owner_id = self.resolve_owner(code)
        if owner_id is None:
            raise Unauthorized("Card not found")
        return owner_id

    def account_info(self, code: str) -> Dict[str, Any]:
        """Balance, tx count and claim cooldown of the card owner"""
        owner_id = self.require_owner(code)
        account = self.store.get_account(owner_id)
        balance = account.balance if account is not None else 0
        status = ClaimUseCase(self.store).status(owner_id)
        return {
            "userId": owner_id,
            "coins": from_minor_units(balance),
            "sats": balance,
            "totalTransactions": self.store.count_user_transactions(owner_id),
            "lastClaimTs": status.last_claim_ms,
            "cooldownRemainingMs": status.remaining_ms,
            "cooldownMs": status.cooldown_ms,
        }

    def claim(self, code: str) -> TransferResult:
        return ClaimUseCase(self.store).execute(self.require_owner(code))

    def transfer_between_cards(self, from_code: str, to_code: str, amount: int) -> TransferResult:
        """
        Raises:
            InvalidAmount: both codes are the same card
            Unauthorized: either card unknown
        """
        if from_code == to_code:
            raise InvalidAmount("Cannot transfer to the same card")
        from_owner = self.require_owner(from_code)
        to_owner = self.require_owner(to_code)
        return TransferUseCase(self.store).execute(
            from_owner, to_owner, amount, min_interval_ms=get_settings().TRANSFER_MIN_INTERVAL_MS
        )

    def transfer_from_card(self, code: str, to_id: str, amount: int) -> TransferResult:
        return TransferUseCase(self.store).execute(
            self.require_owner(code), to_id, amount, min_interval_ms=get_settings().TRANSFER_MIN_INTERVAL_MS
        )
