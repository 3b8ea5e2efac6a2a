"""
Tests for HTTP API accounts: registration, login throttling, sessions
"""
import pytest

from coinledger.application.accounts import (
    AccountValidationError, CleanupIpRecordsUseCase, LoginLocked, LoginUseCase, RegisterUseCase,
    SessionUseCase, UpdateCredentialsUseCase,
)
from coinledger.auth import verify_password
from coinledger.domain.errors import CooldownActive, DuplicateId, Unauthorized
from coinledger.infrastructure.access.repository import AccessRepository, normalize_ip
from coinledger.infrastructure.db.models import IP_LOGIN_FAILURES, IP_REGISTRATION
from coinledger.utils.clock import now_seconds

PASSWORD = "5e884898da28047151d0e56f8dc6292773603d0d6aabbdd62a11ef721d1542d8"


@pytest.fixture
def registered(store):
    return RegisterUseCase(store).execute("alice", PASSWORD, "10.0.0.1")


@pytest.mark.parametrize("raw,expected", [
    ("::1", "127.0.0.1"),
    ("::ffff:10.0.0.7", "10.0.0.7"),
    ("192.168.1.1", "192.168.1.1"),
    (None, "unknown"),
])
def test_normalize_ip(raw, expected):
    assert normalize_ip(raw) == expected


def test_register_creates_account_with_card(store, registered):
    assert len(registered) == 18 and registered.isdigit()
    account = store.get_account(registered)
    assert account.username == "alice"
    assert account.balance == 0
    assert account.cooldown > 0
    assert verify_password(PASSWORD, account.password_hash)
    assert store.get_card_code(registered) is not None


def test_register_one_per_ip(store, registered):
    with pytest.raises(CooldownActive):
        RegisterUseCase(store).execute("bob", PASSWORD, "10.0.0.1")


def test_register_duplicate_username(store, registered):
    with pytest.raises(DuplicateId):
        RegisterUseCase(store).execute("alice", PASSWORD, "10.0.0.2")


@pytest.mark.parametrize("username,password", [("", PASSWORD), ("x" * 65, PASSWORD), ("bob", "")])
def test_register_validates_payload(store, username, password):
    with pytest.raises(AccountValidationError):
        RegisterUseCase(store).execute(username, password, "10.0.0.3")


def test_login_success_creates_session(store, registered):
    result = LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.9")

    assert result.session_created and result.password_correct
    assert result.user_id == registered
    assert result.saldo == "0.00000000"
    assert SessionUseCase(store).resolve(result.session_id) == registered
    body = result.to_dict()
    assert body["sessionId"] == result.session_id
    assert "cooldownRemainingMs" in body


def test_login_replaces_previous_session(store, registered):
    first = LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.9")
    second = LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.9")
    with pytest.raises(Unauthorized):
        SessionUseCase(store).resolve(first.session_id)
    assert SessionUseCase(store).resolve(second.session_id) == registered
    assert len(AccessRepository(store.db).list_user_sessions(registered)) == 1


def test_login_wrong_password(store, registered):
    result = LoginUseCase(store).execute("alice", "wrong", "10.0.0.9")
    assert result.to_dict() == {"sessionCreated": False, "passwordCorrect": False}


def test_login_locks_ip_after_max_attempts(store, registered):
    use_case = LoginUseCase(store)
    for _ in range(3):
        assert not use_case.execute("alice", "wrong", "10.0.0.9").session_created

    with pytest.raises(LoginLocked) as exc_info:
        use_case.execute("alice", PASSWORD, "10.0.0.9")
    assert exc_info.value.remaining_ms > 0

    # other IPs are unaffected
    assert use_case.execute("alice", PASSWORD, "10.0.0.10").session_created


def test_login_success_clears_failures(store, registered):
    use_case = LoginUseCase(store)
    use_case.execute("alice", "wrong", "10.0.0.9")
    use_case.execute("alice", PASSWORD, "10.0.0.9")
    assert AccessRepository(store.db).get_ip_record("10.0.0.9", IP_LOGIN_FAILURES) is None


def test_update_credentials(store, registered):
    UpdateCredentialsUseCase(store).execute(registered, "alice2", "newpass")
    assert LoginUseCase(store).execute("alice2", "newpass", "10.0.0.9").session_created
    assert not LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.11").session_created


def test_update_credentials_taken_username(store, registered):
    other = RegisterUseCase(store).execute("bob", PASSWORD, "10.0.0.2")
    with pytest.raises(DuplicateId):
        UpdateCredentialsUseCase(store).execute(other, "alice", PASSWORD)


def test_logout_and_unregister(store, registered):
    sessions = SessionUseCase(store)
    login = LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.9")
    sessions.logout(login.session_id)
    with pytest.raises(Unauthorized):
        sessions.resolve(login.session_id)

    login = LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.9")
    sessions.unregister(registered, login.session_id)
    assert store.get_account(registered) is not None
    assert store.get_account(registered).username is None
    assert not LoginUseCase(store).execute("alice", PASSWORD, "10.0.0.12").session_created


def test_expired_session_rejected_and_cleaned(store, registered):
    access = AccessRepository(store.db)
    with store.atomic():
        session_id = access.create_session(registered, now_seconds() - 2 * 24 * 60 * 60)

    sessions = SessionUseCase(store)
    with pytest.raises(Unauthorized):
        sessions.resolve(session_id)
    assert sessions.cleanup() == 1
    assert access.get_session(session_id) is None


def test_cleanup_ip_records(store):
    access = AccessRepository(store.db)
    with store.atomic():
        access.upsert_ip_record("1.1.1.1", IP_LOGIN_FAILURES, 3, 1)
        access.upsert_ip_record("1.1.1.1", IP_REGISTRATION, 1, 1)
    assert CleanupIpRecordsUseCase(store).execute() == 2
    assert access.get_ip_record("1.1.1.1", IP_LOGIN_FAILURES) is None
