"""
Ledger domain - constants, result types and pure rules shared by the use cases
"""
import re
from dataclasses import dataclass

from coinledger.domain.errors import InvalidDuration

# Reserved sender id of claim rewards (coin creation, not a real account)
MINT_ID = "000000000000"

# Bill listing roles
ROLE_PAYER = "payer"  # bills charging the user (bill.from_id)
ROLE_PAYEE = "payee"  # bills the user will be paid (bill.to_id)

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
BILL_MIN_DURATION_MS = HOUR_MS
BILL_MAX_DURATION_MS = 182 * DAY_MS
BILL_DEFAULT_DURATION_MS = 90 * DAY_MS

_DURATION_RE = re.compile(r"^(\d+)([dhms])$")
_UNIT_MS = {
    "d": DAY_MS,
    "h": HOUR_MS,
    "m": 60 * 1000,
    "s": 1000,
}


@dataclass(frozen=True)
class TransferResult:
    """Identifier and ISO timestamp of the recorded transaction"""
    tx_id: str
    timestamp: str
    amount: int


def parse_duration_ms(value: str) -> int:
    """
    Parse "<n>[dhms]" into milliseconds

    Example:
        >>> parse_duration_ms("2h")
        7200000

    Raises:
        InvalidDuration: malformed duration
    """
    match = _DURATION_RE.match((value or "").strip().lower())
    if not match:
        raise InvalidDuration("Invalid time. Use 1d, 2h, 30m or 45s.")
    return int(match.group(1)) * _UNIT_MS[match.group(2)]


def clamp_bill_duration(delta_ms: int) -> int:
    return max(BILL_MIN_DURATION_MS, min(BILL_MAX_DURATION_MS, delta_ms))


def bill_expiry(now_ms: int, duration: str | None = None) -> int:
    """
    Expiry timestamp of a bill created at now_ms

    Args:
        duration: "<n>[dhms]", clamped to [1h, 182d]; empty means 90 days

    Raises:
        InvalidDuration: duration given but malformed
    """
    if not duration or not duration.strip():
        return now_ms + BILL_DEFAULT_DURATION_MS
    return now_ms + clamp_bill_duration(parse_duration_ms(duration))
