from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Protocol

from domain.pricing import RateQuote

CacheKey = tuple[str, str]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateCache(Protocol):
    def get(self, key: CacheKey) -> tuple[RateQuote | None, bool]: ...

    def put(self, key: CacheKey, quote: RateQuote, ttl_seconds: int) -> None: ...


class InMemoryRateCache(RateCache):
    """Process-local TTL cache keyed by ``(asset, quote_currency)``."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._entries: dict[CacheKey, tuple[RateQuote, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> tuple[RateQuote | None, bool]:
        now = self._clock()
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                return None, False
            quote, expires_at = cached
            if now >= expires_at:
                del self._entries[key]
                return None, False
        return quote, True

    def put(self, key: CacheKey, quote: RateQuote, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        expires_at = self._clock() + timedelta(seconds=ttl_seconds)
        with self._lock:
            self._entries[key] = (quote, expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["CacheKey", "InMemoryRateCache", "RateCache", "utc_now"]
