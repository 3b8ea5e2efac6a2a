"""
Claim use cases - periodic mint reward subject to a cooldown
"""
import logging
from dataclasses import dataclass

from coinledger.config import get_settings
from coinledger.domain.errors import CooldownActive, InvalidAmount
from coinledger.domain.ledger import MINT_ID, TransferResult
from coinledger.infrastructure.ledger.identifiers import new_transaction_id
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.application.notifications import notify
from coinledger.utils.clock import now_iso, now_ms
from coinledger.utils.money import from_minor_units, to_minor_units

logger = logging.getLogger(__name__)


def configured_reward() -> int:
    return to_minor_units(get_settings().CLAIM_AMOUNT)


@dataclass(frozen=True)
class ClaimStatus:
    last_claim_ms: int
    cooldown_ms: int
    remaining_ms: int

    @property
    def ready(self) -> bool:
        return self.remaining_ms == 0


class ClaimUseCase:
    """
    Use case: claim the mint reward

    One atomic unit:
    1. Credit the reward, cooldown = now, notified = False - a single
       UPDATE guarded by "now - last_claim >= cooldown_ms"
    2. Record MINT_ID -> user transaction

    A failed record insert rolls back the credit too.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, user_id: str, reward: int | None = None, cooldown_ms: int | None = None) -> TransferResult:
        """
        Raises:
            CooldownActive: remaining_ms tells how long to wait
            InvalidAmount: reward is not positive
        """
        reward = configured_reward() if reward is None else reward
        cooldown_ms = get_settings().CLAIM_WAIT_MS if cooldown_ms is None else cooldown_ms
        if reward <= 0:
            raise InvalidAmount("Claim reward must be positive")

        with self.store.atomic():
            self.store.ensure_account(user_id)
            now = now_ms()
            if not self.store.apply_claim(user_id, reward, now, cooldown_ms):
                account = self.store.get_account(user_id, refresh=True)
                remaining = cooldown_ms - (now - (account.cooldown or 0))
                raise CooldownActive("Cooldown active", remaining_ms=min(cooldown_ms, max(1, remaining)))

            tx_id = new_transaction_id(self.store)
            timestamp = now_iso()
            self.store.insert_transaction(tx_id, timestamp, MINT_ID, user_id, reward)

        logger.info("Claim %s: %s sats to %s", tx_id, reward, user_id)
        return TransferResult(tx_id=tx_id, timestamp=timestamp, amount=reward)

    def status(self, user_id: str, cooldown_ms: int | None = None) -> ClaimStatus:
        """Read-only: does not provision the account"""
        cooldown_ms = get_settings().CLAIM_WAIT_MS if cooldown_ms is None else cooldown_ms
        account = self.store.get_account(user_id)
        last = account.cooldown if account is not None else 0
        remaining = max(0, last + cooldown_ms - now_ms()) if last else 0
        return ClaimStatus(last_claim_ms=last, cooldown_ms=cooldown_ms, remaining_ms=remaining)


class ClaimReminderUseCase:
    """
    Use case: DM users whose cooldown elapsed, once per claim cycle
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    def execute(self, cooldown_ms: int | None = None, limit: int = 100) -> int:
        cooldown_ms = get_settings().CLAIM_WAIT_MS if cooldown_ms is None else cooldown_ms
        ready_before = now_ms() - cooldown_ms
        candidates = [user.id for user in self.store.list_unnotified_ready(ready_before, limit=limit)]
        if not candidates:
            return 0

        # accounts claimed or reminded since the listing are skipped
        with self.store.atomic():
            user_ids = [user_id for user_id in candidates if self.store.mark_notified(user_id, ready_before)]

        reward = from_minor_units(configured_reward())
        for user_id in user_ids:
            notify(self.store.db, user_id, "Claim Available", [
                f"You can claim **{reward}** coins again.",
                "Use `!claim`.",
            ])
        return len(user_ids)
