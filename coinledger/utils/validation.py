"""
Validation utilities
"""
import re
from decimal import Decimal, InvalidOperation

from coinledger.domain.errors import InvalidAmount
from coinledger.utils.money import COIN_DECIMALS, to_minor_units


def normalize_decimal_input(value) -> str:
    """
    Normalize an amount: strip blanks, replace comma with a dot

    Example:
        >>> normalize_decimal_input(" 0,5 ")
        "0.5"
    """
    return str(value).strip().replace(",", ".")


def validate_decimal_amount(value, max_decimal_places: int = COIN_DECIMALS) -> tuple[bool, str | None]:
    """
    Validate a coin amount string

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("0.00000001")
        (True, None)
        >>> validate_decimal_amount("0.000000001")
        (False, "At most 8 decimal places")
    """
    if isinstance(value, bool):
        return False, "Invalid amount"

    normalized = normalize_decimal_input(value)

    try:
        Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, "Invalid amount"

    pattern = rf"^\d+(\.\d{{1,{max_decimal_places}}})?$"
    if not re.match(pattern, normalized):
        if normalized.startswith("-"):
            return False, "Amount must be positive"
        return False, f"At most {max_decimal_places} decimal places"

    return True, None


def parse_amount(value) -> int:
    """
    Validate a user-supplied coin amount and convert it to sats

    Args:
        value: "1.5", 0.25, "0,1" ...

    Returns:
        Positive amount in sats

    Raises:
        InvalidAmount: malformed, too precise, or not positive
    """
    is_valid, error = validate_decimal_amount(value)
    if not is_valid:
        raise InvalidAmount(error)

    sats = to_minor_units(normalize_decimal_input(value))
    if sats <= 0:
        raise InvalidAmount("Amount must be positive")
    return sats


def is_card_hash(value: str) -> bool:
    """64 hex chars (sha256 of a card code)"""
    return bool(re.fullmatch(r"[a-fA-F0-9]{64}", value or ""))
