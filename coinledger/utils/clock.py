"""
Time helpers (the ledger mixes epoch-ms integers and ISO-8601 strings)
"""
import time
from datetime import datetime, timezone


def now_ms() -> int:
    return int(time.time() * 1000)


def now_seconds() -> int:
    return int(time.time())


def now_iso() -> str:
    """UTC timestamp with millisecond precision, e.g. 2026-10-19T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_to_ms(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
