"""
Bill use cases - deferred payment requests

A bill never touches balances until it is paid; paying runs the transfer with
the bill id as transaction id and deletes the bill in the same atomic unit.
"""
import logging
from dataclasses import dataclass
from typing import List

from coinledger.application.notifications import notify
from coinledger.application.transfers import TransferUseCase
from coinledger.domain.errors import BillNotFound, InvalidAmount
from coinledger.domain.ledger import ROLE_PAYEE, ROLE_PAYER, TransferResult, bill_expiry
from coinledger.infrastructure.db.models import Bill
from coinledger.infrastructure.ledger.identifiers import new_bill_id
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.clock import now_iso, now_ms
from coinledger.utils.money import from_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillPayment:
    bill_id: str
    payer_id: str
    to_id: str
    amount: int
    timestamp: str
    self_pay: bool


class CreateBillUseCase:
    """
    Use case: create a bill (payment request)

    Example:
        >>> bill_id = CreateBillUseCase(store).execute("", "payee", 1_000_000, "1h")
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, from_id: str | None, to_id: str, amount: int, duration: str | None = None) -> str:
        """
        Args:
            from_id: payer to charge ("" = whoever pays it)
            to_id: payee
            amount: positive sats
            duration: "<n>[dhms]", clamped to [1h, 182d]

        Returns:
            bill_id

        Raises:
            InvalidAmount, InvalidDuration
        """
        if not to_id:
            raise InvalidAmount("Bill needs a receiver")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Bill amount must be positive")
        expiry = bill_expiry(now_ms(), duration)

        with self.store.atomic():
            bill_id = new_bill_id(self.store)
            self.store.create_bill(bill_id, from_id or "", to_id, amount, expiry)

        logger.info("Bill %s created: %s -> %s (%s sats)", bill_id, from_id or "*", to_id, amount)
        return bill_id


class PayBillUseCase:
    """
    Use case: settle a bill

    - executor != bill.to_id: transfer executor -> to_id, tx id = bill id
    - executor == bill.to_id: self-pay, no balance change, record still written
    The bill is deleted in the same unit. Payee and bill creator are notified
    after commit.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self.transfers = TransferUseCase(store)

    def execute(self, executor_id: str, bill_id: str) -> BillPayment:
        """
        Raises:
            BillNotFound: nothing is mutated
            InsufficientFunds, StorageFailure: whole unit rolled back, bill kept
        """
        with self.store.atomic():
            bill = self.store.get_bill(bill_id)
            if bill is None:
                raise BillNotFound(f"Bill {bill_id} not found")
            to_id, from_id, amount = bill.to_id, bill.from_id, bill.amount
            # claim the bill before settling it; a concurrent settler gets 0 rows
            if not self.store.delete_bill(bill_id):
                raise BillNotFound(f"Bill {bill_id} not found")

            if executor_id == to_id:
                timestamp = now_iso()
                self.store.insert_transaction(bill_id, timestamp, executor_id, executor_id, amount)
            else:
                result: TransferResult = self.transfers.execute_provisioning(executor_id, to_id, amount, tx_id=bill_id)
                timestamp = result.timestamp

        payment = BillPayment(
            bill_id=bill_id,
            payer_id=executor_id,
            to_id=to_id,
            amount=amount,
            timestamp=timestamp,
            self_pay=executor_id == to_id,
        )
        self._notify(payment, from_id)
        return payment

    def _notify(self, payment: BillPayment, creator_id: str) -> None:
        coins = from_minor_units(payment.amount)
        if payment.self_pay:
            notify(self.store.db, payment.to_id, "Self Payment (No Transfer)", [
                f"**{coins}** coins",
                f"Bill ID: `{payment.bill_id}`",
                "*No funds moved because the recipient is you.*",
            ])
            return

        notify(self.store.db, payment.to_id, "Bill Paid", [
            f"Received **{coins}** coins",
            f"From: `{payment.payer_id}`",
            f"Bill ID: `{payment.bill_id}`",
        ])
        if creator_id and creator_id not in (payment.payer_id, payment.to_id):
            notify(self.store.db, creator_id, "Your Bill Was Paid", [
                f"Your bill `{payment.bill_id}` for **{coins}** coins",
                f"was paid by: `{payment.payer_id}`",
            ])


class ListBillsUseCase:
    def __init__(self, store: LedgerStore, page_size: int = 10):
        self.store = store
        self.page_size = page_size

    def execute(self, user_id: str, role: str | None = None, page: int = 1) -> List[Bill]:
        """role: ROLE_PAYER, ROLE_PAYEE or None (both)"""
        if role not in (ROLE_PAYER, ROLE_PAYEE, None):
            raise ValueError(f"Unknown bill role: {role}")
        return self.store.list_bills(user_id, role or "any", page=page, page_size=self.page_size)


class SweepExpiredBillsUseCase:
    """
    Use case: delete bills past their expiry, telling the charged user

    Idempotent: a second run with nothing newly expired deletes nothing.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, now: int | None = None) -> int:
        now = now_ms() if now is None else now
        with self.store.atomic():
            expired = [(b.id, b.from_id, b.to_id, b.amount) for b in self.store.list_expired_bills(now)]
            deleted = self.store.delete_bills([bill_id for bill_id, _, _, _ in expired])

        for bill_id, from_id, to_id, amount in expired:
            if from_id:
                notify(self.store.db, from_id, "Bill Expired", [
                    f"Bill `{bill_id}` for **{from_minor_units(amount)}** coins to `{to_id}` expired.",
                ])
        if deleted:
            logger.info("Expired bills removed: %s", deleted)
        return deleted


def serialize_bill(bill: Bill) -> dict:
    return {
        "id": bill.id,
        "from_id": bill.from_id,
        "to_id": bill.to_id,
        "amount": from_minor_units(bill.amount),
        "date": bill.expiry,
    }
