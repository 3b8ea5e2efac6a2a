"""
Ledger API endpoints (transfer, claim, history, balances, stats)
"""
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from coinledger.api.deps import AuthContext, get_store, require_session
from coinledger.api.rate_limit import rate_limit
from coinledger.application.claims import ClaimUseCase
from coinledger.application.stats import rank
from coinledger.application.transactions import list_transactions, lookup_transaction
from coinledger.application.transfers import TransferUseCase
from coinledger.config import get_settings
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import from_minor_units
from coinledger.utils.validation import parse_amount


router = APIRouter(prefix="/api", tags=["ledger"], dependencies=[Depends(rate_limit)])


class TransferRequest(BaseModel):
    toId: str
    amount: str | float


@router.post("/transfer")
def transfer(
    req: TransferRequest,
    auth: AuthContext = Depends(require_session),
    store: LedgerStore = Depends(get_store),
):
    """Session transfer: payer must exist, throttled per payer"""
    result = TransferUseCase(store).execute(
        auth.user_id,
        req.toId,
        parse_amount(req.amount),
        min_interval_ms=get_settings().TRANSFER_MIN_INTERVAL_MS,
    )
    return {"success": True, "txId": result.tx_id, "date": result.timestamp}


@router.post("/claim")
def claim(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    result = ClaimUseCase(store).execute(auth.user_id)
    return {"success": True, "claimed": from_minor_units(result.amount), "txId": result.tx_id}


@router.get("/claim/status")
def claim_status(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    status = ClaimUseCase(store).status(auth.user_id)
    return {
        "lastClaimTs": status.last_claim_ms,
        "cooldownMs": status.cooldown_ms,
        "cooldownRemainingMs": status.remaining_ms,
        "ready": status.ready,
    }


@router.get("/transactions")
def transactions(
    page: int = Query(1, ge=1),
    auth: AuthContext = Depends(require_session),
    store: LedgerStore = Depends(get_store),
):
    return {"page": page, "transactions": list_transactions(store, auth.user_id, page=page)}


@router.get("/tx/{tx_id}")
def tx_lookup(tx_id: str, store: LedgerStore = Depends(get_store)):
    """Public lookup by transaction id"""
    return {"success": True, "tx": lookup_transaction(store, tx_id)}


@router.get("/user/{user_id}/saldo")
def user_saldo(
    user_id: str,
    auth: AuthContext = Depends(require_session),
    store: LedgerStore = Depends(get_store),
):
    account = store.get_account(user_id)
    balance = account.balance if account is not None else 0
    return {"userId": user_id, "saldo": from_minor_units(balance), "sats": balance}


@router.get("/rank")
def get_rank(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return rank(store)


@router.get("/totalusers")
def total_users(store: LedgerStore = Depends(get_store)):
    return {"totalUsers": store.count_users()}
