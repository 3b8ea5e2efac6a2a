"""
Coin <-> minor unit ("sats") conversion.

Balances and amounts are stored as integers; 1 coin = 100 000 000 sats.

Usage:
    from coinledger.utils.money import to_minor_units, from_minor_units

    to_minor_units("0.5")        -> 50000000
    from_minor_units(138889)     -> "0.00138889"
    format_coins(50000000)       -> "0.50000000 coins"
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

SATS_PER_COIN = 100_000_000
COIN_DECIMALS = 8

_SATS = Decimal(SATS_PER_COIN)


def to_minor_units(value) -> int:
    """
    Convert a coin amount to an integer count of sats (rounded to nearest).

    Args:
        value: str / int / Decimal / float with at most 8 fraction digits.
            Callers validate the format first (see utils.validation).

    Returns:
        Amount in sats
    """
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return int((amount * _SATS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def truncate_to_minor_units(value) -> int:
    """Same as to_minor_units but drops digits past the 8th instead of rounding."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return int((amount * _SATS).quantize(Decimal(1), rounding=ROUND_DOWN))


def from_minor_units(sats: int) -> str:
    """
    Format sats as a fixed 8-fraction-digit coin string.

    Exact for any integer (no float arithmetic involved).
    """
    sats = int(sats)
    sign = "-" if sats < 0 else ""
    whole, frac = divmod(abs(sats), SATS_PER_COIN)
    return f"{sign}{whole}.{frac:0{COIN_DECIMALS}d}"


def format_coins(sats: int) -> str:
    """Human-readable amount for chat replies."""
    return f"{from_minor_units(sats)} coins"
