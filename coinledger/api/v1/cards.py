"""
Card and backup API endpoints

/api/card and /api/card/reset need a session; the other card routes take the
card code itself as bearer credential.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from coinledger.api.deps import AuthContext, get_store, require_session
from coinledger.api.rate_limit import rate_limit
from coinledger.application.backups import (
    CreateBackupCodesUseCase, ListBackupCodesUseCase, RestoreBackupUseCase,
)
from coinledger.application.cards import CardService
from coinledger.application.trust_anchor import parse_truncated_amount
from coinledger.domain.errors import InvalidAmount
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.money import from_minor_units


router = APIRouter(prefix="/api", tags=["cards"], dependencies=[Depends(rate_limit)])


class CardCodeRequest(BaseModel):
    cardCode: str


class CardPayRequest(BaseModel):
    fromCard: str
    toCard: str
    amount: str | float


class CardTransferRequest(BaseModel):
    cardCode: str
    toId: str
    amount: str | float


class RestoreRequest(BaseModel):
    backupId: str


def _truncated(amount) -> int:
    sats = parse_truncated_amount(amount)
    if sats <= 0:
        raise InvalidAmount("Invalid parameters")
    return sats


# === Session card / backup routes ===

@router.post("/card")
def get_card(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return {"cardCode": CardService(store).get_or_create(auth.user_id)}


@router.post("/card/reset")
def reset_card(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return {"newCode": CardService(store).reset(auth.user_id)}


@router.post("/backup/create")
def create_backups(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    codes = CreateBackupCodesUseCase(store).execute(auth.user_id)
    return {"success": True, "count": len(codes)}


@router.post("/backup/list")
def list_backups(auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return {"backups": ListBackupCodesUseCase(store).execute(auth.user_id)}


@router.post("/backup/restore")
def restore_backup(
    req: RestoreRequest,
    auth: AuthContext = Depends(require_session),
    store: LedgerStore = Depends(get_store),
):
    result = RestoreBackupUseCase(store).execute(req.backupId, auth.user_id)
    return {"success": True, "amount": from_minor_units(result.amount)}


# === Card-code routes ===

@router.post("/card/info")
def card_info(req: CardCodeRequest, store: LedgerStore = Depends(get_store)):
    return {"success": True, **CardService(store).account_info(req.cardCode)}


@router.post("/card/claim")
def card_claim(req: CardCodeRequest, store: LedgerStore = Depends(get_store)):
    result = CardService(store).claim(req.cardCode)
    return {"success": True, "claimed": from_minor_units(result.amount)}


@router.post("/card/pay")
def card_pay(req: CardPayRequest, store: LedgerStore = Depends(get_store)):
    result = CardService(store).transfer_between_cards(req.fromCard, req.toCard, _truncated(req.amount))
    return {"success": True, "txId": result.tx_id, "date": result.timestamp}


@router.post("/transfer/card")
def transfer_by_card(req: CardTransferRequest, store: LedgerStore = Depends(get_store)):
    result = CardService(store).transfer_from_card(req.cardCode, req.toId, _truncated(req.amount))
    return {"success": True, "txId": result.tx_id, "date": result.timestamp}
