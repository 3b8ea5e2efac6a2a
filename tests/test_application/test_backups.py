"""
Tests for backup code creation and restore
"""
import pytest

from coinledger.application.backups import (
    CreateBackupCodesUseCase, ListBackupCodesUseCase, RestoreBackupUseCase,
)
from coinledger.domain.errors import EmptyWallet, NotFound, SelfRestoreNotAllowed, UnknownCode
from coinledger.infrastructure.db.models import Transaction


def test_create_pads_up_to_limit(store, funded):
    funded("U1", 25_000_000)
    use_case = CreateBackupCodesUseCase(store)

    codes = use_case.execute("U1", limit=12)
    assert len(codes) == 12
    assert len(set(codes)) == 12
    assert all(len(code) == 24 for code in codes)

    again = use_case.execute("U1", limit=12)
    assert sorted(again) == sorted(codes)
    assert sorted(ListBackupCodesUseCase(store).execute("U1")) == sorted(codes)


def test_create_keeps_existing_codes(store, funded):
    funded("U1", 10)
    with store.atomic():
        store.add_backup_code("U1", "existing", 1)
    codes = CreateBackupCodesUseCase(store).execute("U1", limit=3)
    assert codes[0] == "existing"
    assert len(codes) == 3


def test_create_for_empty_wallet_returns_nothing(store, funded):
    funded("U1", 0)
    assert CreateBackupCodesUseCase(store).execute("U1") == []


def test_create_for_unknown_user(store):
    with pytest.raises(NotFound):
        CreateBackupCodesUseCase(store).execute("ghost")


def test_restore_scenario(store, funded, db_session):
    """U2 redeems U1's code: U2 gets 0.25, U1 drops to 0, code is gone"""
    funded("U1", 25_000_000)
    code = CreateBackupCodesUseCase(store).execute("U1", limit=1)[0]

    result = RestoreBackupUseCase(store).execute(code, "U2")

    assert result.amount == 25_000_000
    assert store.get_account("U2").balance == 25_000_000
    assert store.get_account("U1").balance == 0
    assert store.get_backup(code) is None
    txs = db_session.query(Transaction).all()
    assert len(txs) == 1
    assert (txs[0].from_id, txs[0].to_id, txs[0].amount) == ("U1", "U2", 25_000_000)


def test_restore_moves_current_balance_not_creation_balance(store, funded):
    funded("U1", 100)
    code = CreateBackupCodesUseCase(store).execute("U1", limit=1)[0]
    with store.atomic():
        store.set_balance("U1", 300)

    assert RestoreBackupUseCase(store).execute(code, "U2").amount == 300


def test_restore_unknown_code(store):
    with pytest.raises(UnknownCode):
        RestoreBackupUseCase(store).execute("nope", "U2")


def test_self_restore_consumes_code(store, funded):
    funded("U1", 100)
    code = CreateBackupCodesUseCase(store).execute("U1", limit=1)[0]
    with pytest.raises(SelfRestoreNotAllowed):
        RestoreBackupUseCase(store).execute(code, "U1")
    assert store.get_backup(code) is None
    assert store.get_account("U1").balance == 100


def test_restore_empty_wallet_consumes_code(store, funded, db_session):
    funded("U1", 100)
    code = CreateBackupCodesUseCase(store).execute("U1", limit=2)[0]
    with store.atomic():
        store.set_balance("U1", 0)

    with pytest.raises(EmptyWallet):
        RestoreBackupUseCase(store).execute(code, "U2")
    assert store.get_backup(code) is None
    assert db_session.query(Transaction).count() == 0


def test_code_is_single_use(store, funded):
    funded("U1", 100)
    code = CreateBackupCodesUseCase(store).execute("U1", limit=1)[0]
    RestoreBackupUseCase(store).execute(code, "U2")
    with pytest.raises(UnknownCode):
        RestoreBackupUseCase(store).execute(code, "U3")
