"""
Account use cases - HTTP API login, registration, credentials and sessions
"""
import logging
from dataclasses import dataclass

from coinledger.application.cards import CardService
from coinledger.application.claims import ClaimUseCase
from coinledger.auth import hash_password, verify_password
from coinledger.config import get_settings
from coinledger.domain.errors import CooldownActive, DuplicateId, LedgerError, Unauthorized
from coinledger.infrastructure.access.repository import AccessRepository, normalize_ip
from coinledger.infrastructure.db.models import IP_LOGIN_FAILURES, IP_REGISTRATION
from coinledger.infrastructure.ledger.identifiers import new_numeric_user_id
from coinledger.infrastructure.ledger.store import LedgerStore
from coinledger.utils.clock import now_ms, now_seconds
from coinledger.utils.money import from_minor_units

logger = logging.getLogger(__name__)


class AccountValidationError(LedgerError, ValueError):
    """Bad username/password payload"""
    code = "INVALID_CREDENTIALS"


class LoginLocked(CooldownActive):
    """Too many failed logins from one IP"""
    code = "IP_LOCKED"


@dataclass(frozen=True)
class LoginResult:
    session_created: bool
    password_correct: bool
    user_id: str | None = None
    session_id: str | None = None
    saldo: str | None = None
    cooldown_remaining_ms: int | None = None

    def to_dict(self) -> dict:
        data = {"sessionCreated": self.session_created, "passwordCorrect": self.password_correct}
        if self.session_created:
            data.update({
                "userId": self.user_id,
                "sessionId": self.session_id,
                "saldo": self.saldo,
                "cooldownRemainingMs": self.cooldown_remaining_ms,
            })
        return data


def _validate_credentials(username: str, password_hash: str) -> None:
    if not username or not isinstance(username, str) or len(username) > 64:
        raise AccountValidationError("Invalid username")
    if not password_hash or not isinstance(password_hash, str) or len(password_hash) > 512:
        raise AccountValidationError("Invalid password")


class LoginUseCase:
    """
    Use case: username + passwordHash -> bearer session

    Failed attempts are counted per IP (ips type 1); after LOGIN_MAX_ATTEMPTS
    the IP is locked for LOGIN_BLOCK_WINDOW_MS, and each further failure
    extends the lock.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self.access = AccessRepository(store.db)
        self.settings = get_settings()

    def execute(self, username: str, password_hash: str, ip: str | None) -> LoginResult:
        """
        Raises:
            LoginLocked: IP currently locked (remaining_ms set)
        """
        ip = normalize_ip(ip)
        now = now_ms()
        max_attempts = self.settings.LOGIN_MAX_ATTEMPTS
        window = self.settings.LOGIN_BLOCK_WINDOW_MS

        record = self.access.get_ip_record(ip, IP_LOGIN_FAILURES)
        if record is not None and record.tries >= max_attempts and now - record.time < window:
            raise LoginLocked("Too many failed attempts", remaining_ms=window - (now - record.time))

        user = self.access.get_user_by_username(username) if username else None
        if user is None or not verify_password(password_hash, user.password_hash):
            with self.store.atomic():
                tries = min(max_attempts, (record.tries if record is not None else 0) + 1)
                self.access.upsert_ip_record(ip, IP_LOGIN_FAILURES, tries, now)
            logger.info("Failed login from %s", ip)
            return LoginResult(session_created=False, password_correct=False)

        user_id = user.id
        with self.store.atomic():
            self.access.delete_ip_record(ip, IP_LOGIN_FAILURES)
            self.access.delete_user_sessions(user_id)
            session_id = self.access.create_session(user_id, now_seconds())

        CardService(self.store).get_or_create(user_id)
        account = self.store.get_account(user_id)
        status = ClaimUseCase(self.store).status(user_id)
        return LoginResult(
            session_created=True,
            password_correct=True,
            user_id=user_id,
            session_id=session_id,
            saldo=from_minor_units(account.balance),
            cooldown_remaining_ms=status.remaining_ms,
        )


class RegisterUseCase:
    """
    Use case: create an HTTP API account

    One registration per IP per REGISTER_BLOCK_WINDOW_MS (ips type 2).
    The new account gets an 18-digit numeric id, cooldown = now and a card.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self.access = AccessRepository(store.db)

    def execute(self, username: str, password_hash: str, ip: str | None) -> str:
        """
        Returns:
            new user id

        Raises:
            AccountValidationError, CooldownActive (IP block), DuplicateId (username taken)
        """
        _validate_credentials(username, password_hash)
        ip = normalize_ip(ip)
        now = now_ms()
        window = get_settings().REGISTER_BLOCK_WINDOW_MS

        record = self.access.get_ip_record(ip, IP_REGISTRATION)
        if record is not None and now - record.time < window:
            raise CooldownActive("Only one account per IP every 24 hours", remaining_ms=window - (now - record.time))

        with self.store.atomic():
            if self.access.get_user_by_username(username) is not None:
                raise DuplicateId("Username already taken")
            user_id = new_numeric_user_id(self.access.user_id_exists)
            self.store.ensure_account(user_id)
            self.access.set_credentials(user_id, username, hash_password(password_hash))
            self.store.set_claim_state(user_id, now, notified=False)
            self.access.upsert_ip_record(ip, IP_REGISTRATION, 1, now)

        CardService(self.store).get_or_create(user_id)
        logger.info("Registered user %s from %s", user_id, ip)
        return user_id


class UpdateCredentialsUseCase:
    def __init__(self, store: LedgerStore):
        self.store = store
        self.access = AccessRepository(store.db)

    def execute(self, user_id: str, username: str, password_hash: str) -> None:
        _validate_credentials(username, password_hash)
        with self.store.atomic():
            existing = self.access.get_user_by_username(username)
            if existing is not None and existing.id != user_id:
                raise DuplicateId("Username already taken")
            self.access.set_credentials(user_id, username, hash_password(password_hash))


class SessionUseCase:
    """Resolve, end and expire bearer sessions"""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.access = AccessRepository(store.db)

    def resolve(self, session_id: str | None) -> str:
        """
        Returns:
            user id owning the session

        Raises:
            Unauthorized: unknown or expired session
        """
        session = self.access.get_session(session_id) if session_id else None
        if session is None:
            raise Unauthorized("Invalid session")
        if now_seconds() - session.created_at > get_settings().SESSION_TTL_SECONDS:
            raise Unauthorized("Session expired")
        return session.user_id

    def logout(self, session_id: str) -> None:
        with self.store.atomic():
            self.access.delete_session(session_id)

    def unregister(self, user_id: str, session_id: str) -> None:
        """Clear credentials; the wallet itself stays"""
        with self.store.atomic():
            self.access.set_credentials(user_id, None, None)
            self.access.delete_session(session_id)

    def cleanup(self) -> int:
        cutoff = now_seconds() - get_settings().SESSION_TTL_SECONDS
        with self.store.atomic():
            return self.access.delete_sessions_before(cutoff)


class CleanupIpRecordsUseCase:
    """Drop login-failure and registration records older than their windows"""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.access = AccessRepository(store.db)

    def execute(self) -> int:
        settings = get_settings()
        now = now_ms()
        with self.store.atomic():
            removed = self.access.delete_ip_records_before(IP_LOGIN_FAILURES, now - settings.LOGIN_BLOCK_WINDOW_MS)
            removed += self.access.delete_ip_records_before(IP_REGISTRATION, now - settings.REGISTER_BLOCK_WINDOW_MS)
        return removed
