"""
Bill API endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from coinledger.api.deps import AuthContext, get_store, require_session
from coinledger.api.rate_limit import rate_limit
from coinledger.application.bills import CreateBillUseCase, ListBillsUseCase, PayBillUseCase, serialize_bill
from coinledger.application.cards import CardService
from coinledger.config import get_settings
from coinledger.domain.errors import InvalidAmount
from coinledger.domain.ledger import ROLE_PAYEE, ROLE_PAYER
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.validation import parse_amount


router = APIRouter(prefix="/api/bill", tags=["bills"], dependencies=[Depends(rate_limit)])


class PageRequest(BaseModel):
    page: int = 1


class CreateBillRequest(BaseModel):
    fromId: str | None = None
    toId: str
    amount: str | float
    time: str | None = None  # "<n>[dhms]"


class PayBillRequest(BaseModel):
    billId: str


class CreateBillByCardRequest(BaseModel):
    fromCard: str | None = None
    toCard: str | None = None
    amount: str | float
    time: str | None = None


class PayBillByCardRequest(BaseModel):
    cardCode: str
    billId: str


def _list(store: LedgerStore, user_id: str, role: str | None, page: int) -> dict:
    use_case = ListBillsUseCase(store, page_size=get_settings().BILL_PAGE_SIZE)
    page = max(1, page)
    return {"page": page, "bills": [serialize_bill(b) for b in use_case.execute(user_id, role, page)]}


@router.post("/list")
def list_bills(req: PageRequest, auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    """Bills where the user is payer or payee"""
    return _list(store, auth.user_id, None, req.page)


@router.post("/list/from")
def list_bills_to_pay(req: PageRequest, auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return _list(store, auth.user_id, ROLE_PAYER, req.page)


@router.post("/list/to")
def list_bills_to_receive(req: PageRequest, auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    return _list(store, auth.user_id, ROLE_PAYEE, req.page)


@router.post("/create")
def create_bill(req: CreateBillRequest, auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    bill_id = CreateBillUseCase(store).execute(req.fromId or "", req.toId, parse_amount(req.amount), req.time)
    return {"success": True, "billId": bill_id}


@router.post("/pay")
def pay_bill(req: PayBillRequest, auth: AuthContext = Depends(require_session), store: LedgerStore = Depends(get_store)):
    payment = PayBillUseCase(store).execute(auth.user_id, req.billId)
    return {"success": True, "billId": payment.bill_id, "date": payment.timestamp}


@router.post("/create/card")
def create_bill_by_card(req: CreateBillByCardRequest, store: LedgerStore = Depends(get_store)):
    """Card codes stand in for a session; the receiving card is required"""
    if not req.toCard:
        raise InvalidAmount("Bill needs a receiving card")
    cards = CardService(store)
    to_id = cards.require_owner(req.toCard)
    from_id = cards.require_owner(req.fromCard) if req.fromCard else ""
    bill_id = CreateBillUseCase(store).execute(from_id, to_id, parse_amount(req.amount), req.time)
    return {"success": True, "billId": bill_id}


@router.post("/pay/card")
def pay_bill_by_card(req: PayBillByCardRequest, store: LedgerStore = Depends(get_store)):
    payer_id = CardService(store).require_owner(req.cardCode)
    payment = PayBillUseCase(store).execute(payer_id, req.billId)
    return {"success": True, "billId": payment.bill_id, "date": payment.timestamp}
