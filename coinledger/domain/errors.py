"""
Ledger error taxonomy

Every protocol raises one of these; front ends (HTTP routes, chat commands)
translate them into user-facing failures.
"""


class LedgerError(Exception):
    """Base class for all ledger failures"""
    code = "LEDGER_ERROR"


class NotFound(LedgerError):
    """User, transaction, bill or code is absent"""
    code = "NOT_FOUND"


class SenderNotFound(NotFound):
    code = "SENDER_NOT_FOUND"


class BillNotFound(NotFound):
    code = "BILL_NOT_FOUND"


class UnknownCode(NotFound):
    code = "UNKNOWN_CODE"


class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"


class InvalidAmount(LedgerError, ValueError):
    """Non-positive, malformed or over-precise amount"""
    code = "INVALID_AMOUNT"


class DuplicateId(LedgerError):
    """Identifier already used on a strict insert"""
    code = "DUPLICATE_ID"


class CooldownActive(LedgerError):
    """
    Operation refused until the cooldown elapses

    Attributes:
        remaining_ms: milliseconds left before the operation is allowed
    """
    code = "COOLDOWN_ACTIVE"

    def __init__(self, message: str = "Cooldown active", remaining_ms: int = 0):
        super().__init__(message)
        self.remaining_ms = max(0, int(remaining_ms))


class SelfRestoreNotAllowed(LedgerError):
    code = "SELF_RESTORE_NOT_ALLOWED"


class EmptyWallet(LedgerError):
    code = "EMPTY_WALLET"


class Unauthorized(LedgerError):
    """Bad session, bad credentials or unknown card hash"""
    code = "UNAUTHORIZED"


class StorageFailure(LedgerError):
    """Underlying store error; the atomic unit was rolled back"""
    code = "STORAGE_FAILURE"


class InvalidDuration(LedgerError, ValueError):
    """Bill duration not in the <n>[dhms] form"""
    code = "INVALID_DURATION"


class RateLimitExceeded(LedgerError):
    """Too many ledger requests from one IP"""
    code = "RATE_LIMIT_EXCEEDED"
