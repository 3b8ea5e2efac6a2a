"""
Backup/restore use cases - single-use codes that move a whole wallet
"""
import logging
from dataclasses import dataclass
from typing import List

from coinledger.config import get_settings
from coinledger.domain.errors import EmptyWallet, NotFound, SelfRestoreNotAllowed, UnknownCode
from coinledger.infrastructure.ledger.identifiers import new_backup_code, new_transaction_id
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.clock import now_iso, now_ms

logger = logging.getLogger(__name__)

MAX_TRIES_PER_SLOT = 8


@dataclass(frozen=True)
class RestoreResult:
    tx_id: str
    from_id: str
    to_id: str
    amount: int


class CreateBackupCodesUseCase:
    """
    Use case: pad the user's outstanding codes up to the limit

    Existing codes are kept; an empty wallet gets no codes.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, user_id: str, limit: int | None = None) -> List[str]:
        limit = get_settings().BACKUP_CODE_LIMIT if limit is None else limit
        account = self.store.get_account(user_id)
        if account is None:
            raise NotFound(f"Account {user_id} not found")
        if account.balance <= 0:
            return []

        with self.store.atomic():
            codes = self.store.list_backup_codes(user_id)[:limit]
            while len(codes) < limit:
                for _ in range(MAX_TRIES_PER_SLOT):
                    code = new_backup_code()
                    if self.store.add_backup_code(user_id, code, now_ms()):
                        codes.append(code)
                        break
                else:
                    logger.error("Could not insert a backup code for user_id=%s", user_id)
                    break
        return codes


class ListBackupCodesUseCase:
    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, user_id: str) -> List[str]:
        return self.store.list_backup_codes(user_id)


class RestoreBackupUseCase:
    """
    Use case: redeem a backup code into new_user_id

    The code is consumed first, inside the unit; losing that race means
    UnknownCode and nothing else happens.

    1. Unknown or already consumed code -> UnknownCode
    2. Owner == new_user_id -> code consumed, SelfRestoreNotAllowed
    3. Owner balance 0 -> code consumed, EmptyWallet
    4. Move the owner's *current* balance, one transaction row
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, code: str, new_user_id: str) -> RestoreResult:
        tx_id = None
        with self.store.atomic():
            backup = self.store.get_backup(code) if code else None
            if backup is None:
                raise UnknownCode("Backup code not found")
            owner_id = backup.user_id
            if not self.store.delete_backup(code):
                raise UnknownCode("Backup code not found")

            amount = 0
            if owner_id != new_user_id:
                owner = self.store.get_account(owner_id, refresh=True)
                amount = owner.balance if owner is not None else 0
            if amount > 0:
                self.store.ensure_account(new_user_id)
                self.store.adjust_balance(owner_id, -amount)
                self.store.adjust_balance(new_user_id, amount)
                tx_id = new_transaction_id(self.store)
                self.store.insert_transaction(tx_id, now_iso(), owner_id, new_user_id, amount)

        if owner_id == new_user_id:
            raise SelfRestoreNotAllowed("Cannot restore your own backup")
        if amount <= 0:
            raise EmptyWallet("Original wallet has no coins")

        logger.info("Backup restored: %s -> %s (%s sats)", owner_id, new_user_id, amount)
        return RestoreResult(tx_id=tx_id, from_id=owner_id, to_id=new_user_id, amount=amount)
