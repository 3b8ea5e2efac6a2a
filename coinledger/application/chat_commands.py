"""
Legacy text commands (`!bal`, `!pay`, ...) routed onto the ledger use cases

The chat adapter hands over (author id, message text) and sends back whatever
string comes out. Every handler runs wrapped: ledger errors become a short
failure line, anything unexpected is logged and answered generically.
"""
import logging
import re
from typing import Callable, Dict, List

from coinledger.application.backups import CreateBackupCodesUseCase, RestoreBackupUseCase
from coinledger.application.bills import CreateBillUseCase, ListBillsUseCase, PayBillUseCase
from coinledger.application.claims import ClaimUseCase
from coinledger.application.notifications import notify
from coinledger.application.stats import global_stats, rank
from coinledger.application.transactions import (
    DeduplicateTransactionsUseCase, list_transactions, lookup_transaction,
)
from coinledger.application.transfers import TransferUseCase
from coinledger.application.trust_anchor import TrustAnchorTransferUseCase
from coinledger.config import get_settings
from coinledger.domain.errors import CooldownActive, LedgerError
from coinledger.domain.ledger import ROLE_PAYEE, ROLE_PAYER
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import format_coins, from_minor_units
from coinledger.utils.validation import parse_amount

logger = logging.getLogger(__name__)

FAILURE_REPLY = "❌ Command failed."

_MENTION_RE = re.compile(r"^<@!?(\d+)>$")


class UsageError(ValueError):
    """Wrong number/shape of command arguments"""
    pass


def _user_id(token: str) -> str:
    match = _MENTION_RE.match(token)
    if match:
        return match.group(1)
    if not token.isdigit():
        raise UsageError(f"Invalid user id: {token}")
    return token


def _page(args: List[str], index: int = 0) -> int:
    if len(args) > index and args[index].isdigit():
        return max(1, int(args[index]))
    return 1


def _format_remaining(ms: int) -> str:
    seconds = max(0, ms) // 1000
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h {minutes}m {seconds}s"


# ----------------------------------------------------------------------
# Handlers: (store, author_id, args) -> reply
# ----------------------------------------------------------------------

def cmd_bal(store: LedgerStore, author_id: str, args: List[str]) -> str:
    user_id = _user_id(args[0]) if args else author_id
    account = store.get_account(user_id)
    balance = account.balance if account is not None else 0
    return f"💰 `{user_id}` has **{format_coins(balance)}**"


def cmd_pay(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if len(args) < 2:
        raise UsageError("Usage: !pay <user> <amount>")
    to_id = _user_id(args[0])
    result = TransferUseCase(store).execute_provisioning(author_id, to_id, parse_amount(args[1]))
    notify(store.db, to_id, "Coins Received", [
        f"Received **{from_minor_units(result.amount)}** coins",
        f"From: `{author_id}`",
        f"Transaction: `{result.tx_id}`",
    ])
    return f"✅ Sent **{format_coins(result.amount)}** to `{to_id}`\nTransaction: `{result.tx_id}`"


def cmd_claim(store: LedgerStore, author_id: str, args: List[str]) -> str:
    try:
        result = ClaimUseCase(store).execute(author_id)
    except CooldownActive as exc:
        return f"⏳ Wait {_format_remaining(exc.remaining_ms)} to claim again."
    return f"🎉 You claimed **{format_coins(result.amount)}**!"


def cmd_bill(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if len(args) < 3:
        raise UsageError("Usage: !bill <fromId> <toId> <amount> [time]")
    from_id, to_id = _user_id(args[0]), _user_id(args[1])
    bill_id = CreateBillUseCase(store).execute(from_id, to_id, parse_amount(args[2]), args[3] if len(args) > 3 else None)
    return f"✅ Bill created: `{bill_id}`\nReceiver: `{to_id}`\nTo charge: `{from_id}`\nUse `!paybill {bill_id}`"


def cmd_paybill(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if not args:
        raise UsageError("Usage: !paybill <billId>")
    payment = PayBillUseCase(store).execute(author_id, args[0])
    if payment.self_pay:
        return f"✅ Bill `{payment.bill_id}` cancelled (you are the receiver)."
    return f"✅ Paid **{format_coins(payment.amount)}** to `{payment.to_id}`\nBill ID: `{payment.bill_id}`"


def cmd_bills(store: LedgerStore, author_id: str, args: List[str]) -> str:
    page = _page(args)
    listing = ListBillsUseCase(store, page_size=get_settings().BILL_PAGE_SIZE)
    to_pay = listing.execute(author_id, ROLE_PAYER, page)
    to_receive = listing.execute(author_id, ROLE_PAYEE, page)
    if not to_pay and not to_receive:
        return "📭 No bills."
    lines = [f"📄 Bills (page {page})"]
    lines += [f"➡️ pay `{b.id}`: {format_coins(b.amount)} to `{b.to_id}`" for b in to_pay]
    lines += [f"⬅️ receive `{b.id}`: {format_coins(b.amount)} from `{b.from_id or 'anyone'}`" for b in to_receive]
    return "\n".join(lines)


def cmd_check(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if not args:
        raise UsageError("Usage: !check <txId>")
    tx = lookup_transaction(store, args[0])
    return (
        f"Transaction {tx['id']}\nFrom: {tx['from_id']}\nTo: {tx['to_id']}\n"
        f"Date: {tx['date']}\nAmount: {tx['amount']} coins ({tx['amountSats']} sats)"
    )


def cmd_history(store: LedgerStore, author_id: str, args: List[str]) -> str:
    page = _page(args)
    rows = list_transactions(store, author_id, page=page)
    if not rows:
        return "📭 No transactions."
    lines = [f"📜 History (page {page})"]
    for tx in rows:
        direction = "➡️" if tx["from_id"] == author_id else "⬅️"
        other = tx["to_id"] if tx["from_id"] == author_id else tx["from_id"]
        lines.append(f"{direction} {tx['amount']} `{other}` {tx['date']}")
    return "\n".join(lines)


def cmd_backup(store: LedgerStore, author_id: str, args: List[str]) -> str:
    with store.atomic():
        store.ensure_account(author_id)
    codes = CreateBackupCodesUseCase(store).execute(author_id)
    if not codes:
        return "❌ Your wallet is empty, nothing to back up."
    notify(store.db, author_id, "Backup Codes", [f"`{code}`" for code in codes])
    return "📬 Backup codes sent by DM."


def cmd_restore(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if not args:
        raise UsageError("Usage: !restore <code>")
    result = RestoreBackupUseCase(store).execute(args[0], author_id)
    return f"✅ Restored **{format_coins(result.amount)}** from `{result.from_id}`"


def cmd_global(store: LedgerStore, author_id: str, args: List[str]) -> str:
    DeduplicateTransactionsUseCase(store).execute()
    stats = global_stats(store)
    return (
        f"🌐 Total coins: {stats['totalCoins']}\nUsers: {stats['users']}\n"
        f"Transactions: {stats['transactions']}\nClaims: {stats['claims']}\nOpen bills: {stats['bills']}"
    )


def cmd_rank(store: LedgerStore, author_id: str, args: List[str]) -> str:
    data = rank(store, limit=10)
    lines = [f"🏆 Top wallets (total {data['totalCoins']} coins)"]
    for position, row in enumerate(data["rankings"], start=1):
        lines.append(f"{position}. `{row['id']}` {row['coins']}")
    return "\n".join(lines)


def cmd_active(store: LedgerStore, author_id: str, args: List[str]) -> str:
    if len(args) < 3:
        raise UsageError("Usage: !active <cardHash> <targetId> <amount>")
    return TrustAnchorTransferUseCase(store).execute(args[0], args[1], args[2])


COMMANDS: Dict[str, Callable[[LedgerStore, str, List[str]], str]] = {
    "!bal": cmd_bal,
    "!pay": cmd_pay,
    "!claim": cmd_claim,
    "!bill": cmd_bill,
    "!paybill": cmd_paybill,
    "!bills": cmd_bills,
    "!check": cmd_check,
    "!history": cmd_history,
    "!backup": cmd_backup,
    "!restore": cmd_restore,
    "!global": cmd_global,
    "!rank": cmd_rank,
    "!active": cmd_active,
}


def handle_message(store: LedgerStore, author_id: str, content: str) -> str | None:
    """
    Dispatch one chat message

    Returns:
        Reply text, or None when the message is not a known command
    """
    parts = (content or "").split()
    if not parts:
        return None
    handler = COMMANDS.get(parts[0].lower())
    if handler is None:
        return None

    try:
        return handler(store, author_id, parts[1:])
    except UsageError as exc:
        return f"❌ {exc}"
    except LedgerError as exc:
        return f"❌ {exc}"
    except Exception:
        logger.exception("Command %s from %s failed", parts[0], author_id)
        return FAILURE_REPLY
