"""
Tests for bill creation, payment, listing and expiry sweep
"""
import pytest

from coinledger.application.bills import (
    CreateBillUseCase, ListBillsUseCase, PayBillUseCase, SweepExpiredBillsUseCase,
)
from coinledger.domain.errors import BillNotFound, InsufficientFunds, InvalidAmount, InvalidDuration
from coinledger.domain.ledger import HOUR_MS, ROLE_PAYEE, ROLE_PAYER
from coinledger.infrastructure.db.models import Bill, DmJob, Transaction
from coinledger.utils.clock import now_ms


def test_create_bill_does_not_touch_balances(store, funded, db_session):
    funded("U1", 0)
    bill_id = CreateBillUseCase(store).execute("U2", "U1", 1_000_000, "1h")

    bill = db_session.get(Bill, bill_id)
    assert bill.from_id == "U2"
    assert bill.to_id == "U1"
    assert bill.amount == 1_000_000
    assert abs(bill.expiry - (now_ms() + HOUR_MS)) < 5_000
    assert store.get_account("U1").balance == 0
    assert db_session.query(Transaction).count() == 0


def test_create_bill_validation(store):
    use_case = CreateBillUseCase(store)
    with pytest.raises(InvalidAmount):
        use_case.execute("", "U1", 0)
    with pytest.raises(InvalidAmount):
        use_case.execute("", "", 10)
    with pytest.raises(InvalidDuration):
        use_case.execute("", "U1", 10, "soon")


def test_pay_bill_scenario(store, funded, db_session):
    """U1 bills U2 for 0.01; U2 pays; one tx keyed by the bill id, no bill left"""
    funded("U1", 5_000_000)
    funded("U2", 3_000_000)
    bill_id = CreateBillUseCase(store).execute("U2", "U1", 1_000_000, "1h")

    payment = PayBillUseCase(store).execute("U2", bill_id)

    assert store.get_account("U1").balance == 6_000_000
    assert store.get_account("U2").balance == 2_000_000
    assert db_session.query(Bill).count() == 0
    txs = db_session.query(Transaction).all()
    assert len(txs) == 1
    assert txs[0].id == bill_id
    assert (txs[0].from_id, txs[0].to_id, txs[0].amount) == ("U2", "U1", 1_000_000)
    assert payment.self_pay is False


def test_pay_bill_notifies_payee_and_creator(store, funded, db_session):
    funded("payer", 100)
    bill_id = CreateBillUseCase(store).execute("creator", "payee", 50)
    PayBillUseCase(store).execute("payer", bill_id)

    notified = sorted(job.user_id for job in db_session.query(DmJob).all())
    assert notified == ["creator", "payee"]


def test_pay_missing_bill_mutates_nothing(store, funded, db_session):
    funded("U2", 100)
    with pytest.raises(BillNotFound):
        PayBillUseCase(store).execute("U2", "no-such-bill")
    assert store.get_account("U2").balance == 100
    assert db_session.query(Transaction).count() == 0


def test_pay_bill_insufficient_funds_keeps_bill(store, funded, db_session):
    funded("U2", 10)
    bill_id = CreateBillUseCase(store).execute("", "U1", 1_000)
    with pytest.raises(InsufficientFunds):
        PayBillUseCase(store).execute("U2", bill_id)
    assert db_session.get(Bill, bill_id) is not None
    assert store.get_account("U2").balance == 10
    assert db_session.query(Transaction).count() == 0


def test_self_pay_bill_cancels_without_moving(store, funded, db_session):
    """Payee paying its own bill: no balance change, tx recorded, bill gone"""
    funded("U1", 42)
    bill_id = CreateBillUseCase(store).execute("", "U1", 1_000)
    payment = PayBillUseCase(store).execute("U1", bill_id)

    assert payment.self_pay is True
    assert store.get_account("U1").balance == 42
    assert db_session.query(Bill).count() == 0
    tx = db_session.get(Transaction, bill_id)
    assert tx.from_id == tx.to_id == "U1"


def test_open_bill_paid_by_unknown_payer_is_provisioned(store, db_session):
    bill_id = CreateBillUseCase(store).execute("", "U1", 1_000)
    with pytest.raises(InsufficientFunds):
        PayBillUseCase(store).execute("newcomer", bill_id)
    assert db_session.get(Bill, bill_id) is not None


def test_list_bills_by_role(store):
    create = CreateBillUseCase(store)
    to_pay = create.execute("me", "shop", 10)
    to_receive = create.execute("friend", "me", 20)
    create.execute("x", "y", 30)

    listing = ListBillsUseCase(store, page_size=10)
    assert [b.id for b in listing.execute("me", ROLE_PAYER)] == [to_pay]
    assert [b.id for b in listing.execute("me", ROLE_PAYEE)] == [to_receive]
    assert sorted(b.id for b in listing.execute("me")) == sorted([to_pay, to_receive])
    with pytest.raises(ValueError):
        listing.execute("me", "bogus")


def test_sweep_expired_bills_is_idempotent(store, db_session):
    with store.atomic():
        store.create_bill("old", "payer", "payee", 10, 1_000)
        store.create_bill("open", "", "payee", 10, 2_000)
        store.create_bill("fresh", "payer", "payee", 10, now_ms() + HOUR_MS)

    sweep = SweepExpiredBillsUseCase(store)
    assert sweep.execute() == 2
    assert [b.id for b in db_session.query(Bill).all()] == ["fresh"]
    assert [job.user_id for job in db_session.query(DmJob).all()] == ["payer"]

    assert sweep.execute() == 0
    assert db_session.query(DmJob).count() == 1
