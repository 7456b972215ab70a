"""Caching service for on-chain market lookups.

This module provides a TTL-based cache shared by every market data lookup.
Token decimals and underlying addresses never change on-chain, so they are
stored with an infinite TTL; prices and comptroller metadata drift and expire
after the default TTL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Union

logger = logging.getLogger(__name__)

# A TTL of 0 keeps the entry for the life of the process
INFINITE_TTL = 0.0

DEFAULT_TTL_SECONDS = 600.0
DEFAULT_CHECK_PERIOD_SECONDS = 200.0

# Key namespaces, one per lookup kind
DECIMALS = "decimals"
UNDERLYING = "underlying"
PRICE = "price"
MARKETS = "markets"


class _Missing:
    """Sentinel type returned on cache misses."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class Decimals:
    value: int


@dataclass(frozen=True)
class UnderlyingAddress:
    value: str


@dataclass(frozen=True)
class Price:
    value: float  # USD per whole token


@dataclass(frozen=True)
class MarketInfo:
    is_listed: bool
    collateral_factor: float  # 0.75 = 75%


CacheValue = Union[Decimals, UnderlyingAddress, Price, MarketInfo]


def cache_key(kind: str, address: str) -> str:
    """Build a namespaced cache key, e.g. ``price_0xc02a...``."""
    return f"{kind}_{address.lower()}"


@dataclass
class CacheEntry:
    """Cache entry with TTL tracking."""
    value: CacheValue
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        """Check if this cache entry has expired."""
        if self.ttl_seconds == INFINITE_TTL:
            return False
        return now - self.created_at >= self.ttl_seconds


class TTLCache:
    """TTL-based cache for market lookups.

    Expired items are evicted lazily on ``get`` and by a periodic background
    sweep once ``start()`` has been called.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        check_period_seconds: float = DEFAULT_CHECK_PERIOD_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._cache: Dict[str, CacheEntry] = {}
        self._default_ttl = default_ttl_seconds
        self._check_period = check_period_seconds
        self._clock = clock
        self._sweep_task: asyncio.Task | None = None
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> CacheValue | _Missing:
        """Get value from cache if not expired.

        Args:
            key: Cache key

        Returns:
            Cached value, or ``MISSING`` if not found/expired
        """
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return MISSING

        if entry.is_expired(self._clock()):
            del self._cache[key]
            self._misses += 1
            return MISSING

        self._hits += 1
        return entry.value

    def set(self, key: str, value: CacheValue, ttl_seconds: float | None = None) -> None:
        """Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Custom TTL; ``None`` uses the default,
                ``INFINITE_TTL`` never expires
        """
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        self._cache[key] = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl_seconds=ttl,
        )

    def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            return True
        return False

    def clear(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        return count

    def cleanup_expired(self) -> int:
        """Remove all expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._cache.items()
            if entry.is_expired(now)
        ]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    async def _sweep(self):
        while True:
            await asyncio.sleep(self._check_period)
            removed = self.cleanup_expired()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")

    def start(self) -> None:
        """Start the periodic background sweep on the running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep())

    async def stop(self) -> None:
        if self._sweep_task is None:
            return
        self._sweep_task.cancel()
        try:
            await self._sweep_task
        except asyncio.CancelledError:
            pass
        self._sweep_task = None

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0

        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": hit_rate,
        }
