"""
Ledger Store - the only code that reads or writes ledger tables

Every use case receives a LedgerStore built on a SQLAlchemy session and wraps
multi-row mutations in `store.atomic()`. Primitives only add/flush; commit or
rollback happens once, at the outermost atomic block.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, literal_column, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from coinledger.domain.errors import (
    DuplicateId, InsufficientFunds, InvalidAmount, LedgerError, NotFound, StorageFailure,
)
from coinledger.domain.ledger import MINT_ID, ROLE_PAYEE, ROLE_PAYER
from coinledger.infrastructure.db.models import Backup, Bill, Card, Transaction, User

logger = logging.getLogger(__name__)

_ROWID = literal_column("transactions.rowid")


class LedgerStore:
    """
    Persistent users / transactions / bills / backups / cards

    Example:
        >>> store = LedgerStore(db)
        >>> with store.atomic():
        ...     store.adjust_balance("u1", -100)
        ...     store.adjust_balance("u2", 100)
        ...     store.insert_transaction(tx_id, ts, "u1", "u2", 100)
    """

    def __init__(self, db: Session):
        self.db = db
        self._depth = 0

    # ------------------------------------------------------------------
    # Atomic unit
    # ------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator["LedgerStore"]:
        """
        All-or-nothing block; nested blocks join the outermost one

        Raises:
            LedgerError: re-raised after rollback
            StorageFailure: wraps any SQLAlchemy error after rollback
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield self
            self.db.commit()
        except LedgerError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Ledger unit rolled back")
            raise StorageFailure("Storage failure") from exc
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._depth = 0

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_account(self, user_id: str, refresh: bool = False) -> Optional[User]:
        """
        Read-only lookup (never provisions)

        Args:
            refresh: bypass the session identity map and re-read the row
        """
        if refresh:
            return self.db.get(User, user_id, populate_existing=True)
        return self.db.get(User, user_id)

    def ensure_account(self, user_id: str) -> User:
        """
        Read-or-create: a missing account is inserted with balance 0

        Safe under concurrent creators (INSERT OR IGNORE).
        """
        if not user_id:
            raise NotFound("Empty user id")
        user = self.db.get(User, user_id)
        if user is not None:
            return user

        self.db.execute(
            sqlite_insert(User)
            .values(id=user_id, balance=0, cooldown=0, notified=False)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        return self._reload(user_id)

    def set_balance(self, user_id: str, new_balance: int) -> None:
        if new_balance < 0:
            raise InvalidAmount("Balance cannot be negative")
        self.ensure_account(user_id)
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(balance=new_balance)
            .execution_options(synchronize_session=False)
        )
        self._reload(user_id)

    def adjust_balance(self, user_id: str, delta: int) -> int:
        """
        Add delta to the live balance in one conditional UPDATE

        A debit only applies while the stored balance covers it, so two
        racing debits cannot both pass a stale check.

        Returns:
            New balance

        Raises:
            NotFound: account does not exist
            InsufficientFunds: debit larger than the live balance
        """
        self.db.flush()
        stmt = update(User).where(User.id == user_id)
        if delta < 0:
            stmt = stmt.where(User.balance >= -delta)
        result = self.db.execute(
            stmt.values(balance=User.balance + delta).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if self.get_account(user_id) is None:
                raise NotFound(f"Account {user_id} not found")
            raise InsufficientFunds("Insufficient funds")
        return self._reload(user_id).balance

    def set_claim_state(self, user_id: str, cooldown_ms: int, notified: bool) -> None:
        self.ensure_account(user_id)
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(cooldown=cooldown_ms, notified=notified)
            .execution_options(synchronize_session=False)
        )
        self._reload(user_id)

    def apply_claim(self, user_id: str, reward: int, now_ms: int, cooldown_ms: int) -> bool:
        """
        Credit the reward and restart the cooldown in one conditional UPDATE

        The row only changes while the stored cooldown has elapsed, so two
        racing claims cannot both pass a stale read.

        Returns:
            False when the cooldown is still active (nothing written)
        """
        self.db.flush()
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.cooldown <= now_ms - cooldown_ms)
            .values(balance=User.balance + reward, cooldown=now_ms, notified=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self._reload(user_id)
        return True

    def mark_notified(self, user_id: str, ready_before_ms: int) -> bool:
        """
        Flag a ready, not yet reminded account as reminded

        Returns:
            False if the account was claimed or reminded in the meantime
        """
        result = self.db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.notified.is_(False),
                User.cooldown > 0,
                User.cooldown <= ready_before_ms,
            )
            .values(notified=True)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount == 1

    def list_unnotified_ready(self, ready_before_ms: int, limit: int = 100) -> List[User]:
        """Accounts whose last claim is older than ready_before_ms and not yet reminded"""
        return list(self.db.scalars(
            select(User)
            .where(User.notified.is_(False), User.cooldown > 0, User.cooldown <= ready_before_ms)
            .order_by(User.cooldown.asc())
            .limit(limit)
        ))

    def _reload(self, user_id: str) -> User:
        return self.db.get(User, user_id, populate_existing=True)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def transaction_exists(self, tx_id: str) -> bool:
        return self.db.get(Transaction, tx_id) is not None

    def insert_transaction(self, tx_id: str, timestamp: str, from_id: str, to_id: str, amount: int) -> Transaction:
        """
        Strict insert

        Raises:
            DuplicateId: tx_id already recorded
        """
        if amount <= 0:
            raise InvalidAmount("Transaction amount must be positive")
        if self.transaction_exists(tx_id):
            raise DuplicateId(f"Transaction {tx_id} already exists")

        tx = Transaction(id=tx_id, timestamp=timestamp, from_id=from_id, to_id=to_id, amount=amount)
        self.db.add(tx)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise DuplicateId(f"Transaction {tx_id} already exists") from exc
        return tx

    def upsert_transaction(self, tx_id: str, timestamp: str, from_id: str, to_id: str, amount: int) -> Transaction:
        """Idempotent insert: an existing row with the same id is replaced"""
        if amount <= 0:
            raise InvalidAmount("Transaction amount must be positive")
        tx = self.db.merge(Transaction(id=tx_id, timestamp=timestamp, from_id=from_id, to_id=to_id, amount=amount))
        self.db.flush()
        return tx

    def get_transaction(self, tx_id: str) -> Optional[Transaction]:
        return self.db.get(Transaction, tx_id)

    def list_transactions(self, user_id: str, page: int = 1, page_size: int = 20) -> List[Transaction]:
        """Transactions from or to the user, newest first"""
        page = max(1, int(page))
        return list(self.db.scalars(
            select(Transaction)
            .where(or_(Transaction.from_id == user_id, Transaction.to_id == user_id))
            .order_by(Transaction.timestamp.desc(), _ROWID.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ))

    def last_outgoing_timestamp(self, user_id: str, exclude_tx_id: Optional[str] = None) -> Optional[str]:
        stmt = select(func.max(Transaction.timestamp)).where(Transaction.from_id == user_id)
        if exclude_tx_id is not None:
            stmt = stmt.where(Transaction.id != exclude_tx_id)
        return self.db.scalar(stmt)

    def deduplicate_transactions(self, user_id: Optional[str] = None) -> int:
        """
        Delete rows duplicating (timestamp, amount, from_id, to_id), keeping the
        lowest-inserted copy of each group

        Args:
            user_id: limit the sweep to rows involving this user (None = global)

        Returns:
            Number of rows removed
        """
        self.db.flush()
        keep = (
            select(func.min(_ROWID))
            .select_from(Transaction)
            .group_by(Transaction.timestamp, Transaction.amount, Transaction.from_id, Transaction.to_id)
        )
        stmt = delete(Transaction).where(_ROWID.not_in(keep))
        if user_id is not None:
            stmt = stmt.where(or_(Transaction.from_id == user_id, Transaction.to_id == user_id))
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        self.db.expire_all()
        return result.rowcount or 0

    def prune_transactions_before(self, cutoff_iso: str) -> int:
        result = self.db.execute(
            delete(Transaction)
            .where(Transaction.timestamp < cutoff_iso)
            .execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    def bill_exists(self, bill_id: str) -> bool:
        return self.db.get(Bill, bill_id) is not None

    def create_bill(self, bill_id: str, from_id: str, to_id: str, amount: int, expiry: int) -> Bill:
        if amount <= 0:
            raise InvalidAmount("Bill amount must be positive")
        if self.bill_exists(bill_id):
            raise DuplicateId(f"Bill {bill_id} already exists")
        bill = Bill(id=bill_id, from_id=from_id or "", to_id=to_id, amount=amount, expiry=expiry)
        self.db.add(bill)
        self.db.flush()
        return bill

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        return self.db.get(Bill, bill_id)

    def delete_bill(self, bill_id: str) -> bool:
        result = self.db.execute(
            delete(Bill).where(Bill.id == bill_id).execution_options(synchronize_session=False)
        )
        bill = self.db.get(Bill, bill_id)
        if bill is not None:
            self.db.expunge(bill)
        return bool(result.rowcount)

    def list_bills(self, user_id: str, role: str, page: int = 1, page_size: int = 10) -> List[Bill]:
        """
        Args:
            role: ROLE_PAYER (bills charging the user) or ROLE_PAYEE (bills the user receives)
        """
        if role == ROLE_PAYER:
            condition = Bill.from_id == user_id
        elif role == ROLE_PAYEE:
            condition = Bill.to_id == user_id
        else:
            condition = or_(Bill.from_id == user_id, Bill.to_id == user_id)
        page = max(1, int(page))
        return list(self.db.scalars(
            select(Bill)
            .where(condition)
            .order_by(Bill.expiry.asc(), Bill.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ))

    def list_expired_bills(self, now_ms: int) -> List[Bill]:
        return list(self.db.scalars(select(Bill).where(Bill.expiry < now_ms).order_by(Bill.expiry.asc())))

    def delete_bills(self, bill_ids: List[str]) -> int:
        if not bill_ids:
            return 0
        result = self.db.execute(
            delete(Bill).where(Bill.id.in_(bill_ids)).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return result.rowcount or 0

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def add_backup_code(self, user_id: str, code: str, created_at: int) -> bool:
        """False when the code is already taken"""
        result = self.db.execute(
            sqlite_insert(Backup)
            .values(code=code, user_id=user_id, created_at=created_at)
            .on_conflict_do_nothing(index_elements=["code"])
        )
        return bool(result.rowcount)

    def get_backup(self, code: str) -> Optional[Backup]:
        return self.db.get(Backup, code)

    def delete_backup(self, code: str) -> bool:
        result = self.db.execute(
            delete(Backup).where(Backup.code == code).execution_options(synchronize_session=False)
        )
        self.db.expire_all()
        return bool(result.rowcount)

    def list_backup_codes(self, user_id: str) -> List[str]:
        return list(self.db.scalars(
            select(Backup.code).where(Backup.user_id == user_id).order_by(Backup.created_at.asc(), Backup.code.asc())
        ))

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def get_card_code(self, owner_id: str) -> Optional[str]:
        return self.db.scalar(select(Card.code).where(Card.owner_id == owner_id))

    def replace_card(self, owner_id: str, code: str, code_hash: str) -> str:
        """Drop the owner's previous card (if any) and store the new one"""
        self.db.execute(
            delete(Card).where(Card.owner_id == owner_id).execution_options(synchronize_session=False)
        )
        self.db.add(Card(code=code, code_hash=code_hash, owner_id=owner_id))
        self.db.flush()
        return code

    def card_code_exists(self, code: str) -> bool:
        return self.db.get(Card, code) is not None

    def resolve_card_owner(self, code: str) -> Optional[str]:
        return self.db.scalar(select(Card.owner_id).where(Card.code == code))

    def resolve_card_owner_by_hash(self, code_hash: str) -> Optional[str]:
        return self.db.scalar(select(Card.owner_id).where(Card.code_hash == code_hash.lower()))

    # ------------------------------------------------------------------
    # Economy stats
    # ------------------------------------------------------------------

    def total_balance(self) -> int:
        return self.db.scalar(select(func.coalesce(func.sum(User.balance), 0))) or 0

    def total_minted(self) -> int:
        return self.db.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(Transaction.from_id == MINT_ID)
        ) or 0

    def count_users(self) -> int:
        return self.db.scalar(select(func.count()).select_from(User)) or 0

    def count_transactions(self, from_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Transaction)
        if from_id is not None:
            stmt = stmt.where(Transaction.from_id == from_id)
        return self.db.scalar(stmt) or 0

    def count_bills(self) -> int:
        return self.db.scalar(select(func.count()).select_from(Bill)) or 0

    def count_user_transactions(self, user_id: str) -> int:
        return self.db.scalar(
            select(func.count()).select_from(Transaction)
            .where(or_(Transaction.from_id == user_id, Transaction.to_id == user_id))
        ) or 0

    def top_balances(self, limit: int = 25) -> List[User]:
        return list(self.db.scalars(select(User).order_by(User.balance.desc(), User.id.asc()).limit(limit)))
