"""
Transfer use cases - move balance between two accounts and record it

Both entry points share one primitive (`_apply`) executed inside a single
atomic unit: debit payer, credit payee, insert exactly one transaction row.
"""
import logging

from coinledger.domain.errors import CooldownActive, InvalidAmount, SenderNotFound
from coinledger.domain.ledger import TransferResult
from coinledger.infrastructure.ledger.identifiers import new_transaction_id
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.clock import iso_to_ms, now_iso, now_ms

logger = logging.getLogger(__name__)


def _require_positive(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount("Amount must be a positive integer of sats")
    return amount


class TransferUseCase:
    """
    Use case: transfer sats from payer to payee

    Two named variants:
    - execute(): payer must already exist (authenticated session and card flows)
    - execute_provisioning(): payer is created on demand (chat commands, bill payment)

    Self-pay (from_id == to_id) moves nothing but still records the transaction.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(
        self,
        from_id: str,
        to_id: str,
        amount: int,
        tx_id: str | None = None,
        min_interval_ms: int = 0,
    ) -> TransferResult:
        """
        Transfer from an existing account

        Args:
            from_id: payer (must exist)
            to_id: payee (created with balance 0 if missing)
            amount: positive sats
            tx_id: caller-supplied transaction id (generated when None)
            min_interval_ms: refuse if the payer's previous outgoing
                transaction is more recent than this

        Raises:
            InvalidAmount, SenderNotFound, InsufficientFunds, DuplicateId,
            CooldownActive, StorageFailure
        """
        amount = _require_positive(amount)
        with self.store.atomic():
            if self.store.get_account(from_id) is None:
                raise SenderNotFound(f"Sender {from_id} not found")
            result = self._apply(from_id, to_id, amount, tx_id)
            if min_interval_ms:
                # checked after our own writes, under the write lock
                self._check_interval(from_id, min_interval_ms, result.tx_id)
        self._log(from_id, to_id, result)
        return result

    def execute_provisioning(
        self,
        from_id: str,
        to_id: str,
        amount: int,
        tx_id: str | None = None,
    ) -> TransferResult:
        """
        Transfer where a missing payer is provisioned with balance 0 first

        A fresh payer then fails with InsufficientFunds rather than SenderNotFound.
        """
        amount = _require_positive(amount)
        with self.store.atomic():
            self.store.ensure_account(from_id)
            result = self._apply(from_id, to_id, amount, tx_id)
        self._log(from_id, to_id, result)
        return result

    def _check_interval(self, from_id: str, min_interval_ms: int, current_tx_id: str) -> None:
        """Refuse when another outgoing transaction of the payer is too recent"""
        last = self.store.last_outgoing_timestamp(from_id, exclude_tx_id=current_tx_id)
        if not last:
            return
        elapsed = now_ms() - iso_to_ms(last)
        if elapsed < min_interval_ms:
            remaining = min(min_interval_ms, min_interval_ms - elapsed)
            raise CooldownActive("Transfer cooldown active", remaining_ms=remaining)

    def _apply(self, from_id: str, to_id: str, amount: int, tx_id: str | None) -> TransferResult:
        self.store.ensure_account(to_id)
        if from_id != to_id:
            self.store.adjust_balance(from_id, -amount)
            self.store.adjust_balance(to_id, amount)

        tx_id = tx_id or new_transaction_id(self.store)
        timestamp = now_iso()
        self.store.insert_transaction(tx_id, timestamp, from_id, to_id, amount)
        return TransferResult(tx_id=tx_id, timestamp=timestamp, amount=amount)

    @staticmethod
    def _log(from_id: str, to_id: str, result: TransferResult) -> None:
        logger.info("Transfer %s: %s -> %s (%s sats)", result.tx_id, from_id, to_id, result.amount)
