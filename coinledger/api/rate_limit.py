"""
Per-IP token bucket in front of the ledger routes

Each IP starts with RATE_LIMIT_BURST tokens and regains RATE_LIMIT_PER_IP
tokens per second; a request costs one token. Buckets live in process memory.
"""
import threading
import time
from dataclasses import dataclass
from typing import Dict

from fastapi import Request

from coinledger.api.deps import client_ip
from coinledger.config import get_settings
from coinledger.domain.errors import RateLimitExceeded
from coinledger.infrastructure.access.repository import normalize_ip

MAX_TRACKED_IPS = 10_000


@dataclass
class _Bucket:
    tokens: float
    refilled_at: float


class TokenBucketLimiter:
    """
    Example:
        >>> limiter = TokenBucketLimiter()
        >>> limiter.try_consume("10.0.0.1", rate=10, burst=10)
        True
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def try_consume(self, key: str, rate: float, burst: int) -> bool:
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                if len(self._buckets) >= MAX_TRACKED_IPS:
                    self._drop_full(now, rate, burst)
                bucket = self._buckets[key] = _Bucket(tokens=float(burst), refilled_at=now)
            else:
                elapsed = max(0.0, now - bucket.refilled_at)
                bucket.tokens = min(float(burst), bucket.tokens + elapsed * rate)
                bucket.refilled_at = now

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True
            return False

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _drop_full(self, now: float, rate: float, burst: int) -> None:
        # a bucket that would be full again carries no state worth keeping
        for key, bucket in list(self._buckets.items()):
            if bucket.tokens + (now - bucket.refilled_at) * rate >= burst:
                del self._buckets[key]


limiter = TokenBucketLimiter()


def rate_limit(request: Request) -> None:
    """
    Router dependency

    Raises:
        RateLimitExceeded: bucket empty (-> 429 {"error": "RATE_LIMIT_EXCEEDED"})

    Usage:
        router = APIRouter(prefix="/api", dependencies=[Depends(rate_limit)])
    """
    settings = get_settings()
    if settings.RATE_LIMIT_BURST <= 0:
        return
    ip = normalize_ip(client_ip(request))
    if not limiter.try_consume(ip, settings.RATE_LIMIT_PER_IP, settings.RATE_LIMIT_BURST):
        raise RateLimitExceeded("Too many requests")
