"""Memoized per-market lookups backed by on-chain reads.

Each lookup checks the shared ``TTLCache`` first and only reads from the chain
on a miss. A value is cached only after every read it depends on succeeded,
so a failed lookup is retried against the chain on the next access.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from web3 import AsyncWeb3

from lending_exporter.protocols.comptroller import ComptrollerContracts
from lending_exporter.services.cache import (
    DECIMALS,
    INFINITE_TTL,
    MARKETS,
    MISSING,
    PRICE,
    UNDERLYING,
    Decimals,
    MarketInfo,
    Price,
    TTLCache,
    UnderlyingAddress,
    cache_key,
)
from lending_exporter.services.rpc import call

logger = logging.getLogger(__name__)

MANTISSA_DECIMALS = 18


def format_units(value: int, decimals: int) -> float:
    """Scale a fixed-point integer down by ``decimals`` digits."""
    return value / 10 ** decimals


class MarketDataResolver:
    """Resolves underlying assets, decimals, USD prices and market metadata.

    Concurrent callers asking for the same key wait on a per-key lock, so a
    market resolved by two wallets at once is read from the chain only once.
    """

    def __init__(self, contracts: ComptrollerContracts, cache: TTLCache):
        self._contracts = contracts
        self._addresses = contracts.addresses
        self._cache = cache
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def resolve_underlying(self, market_address: str) -> str:
        key = cache_key(UNDERLYING, market_address)
        async with self._lock(key):
            cached = self._cache.get(key)
            if cached is not MISSING:
                return cached.value

            market = self._contracts.market(market_address)
            underlying = await call(market.functions.underlying(), "underlying")
            underlying = self._addresses.normalize_asset(underlying)

            logger.debug(f"Underlying of market {market_address} is {underlying}")
            self._cache.set(key, UnderlyingAddress(underlying), INFINITE_TTL)
            return underlying

    async def resolve_decimals(self, asset_address: str) -> int:
        asset_address = self._addresses.normalize_asset(asset_address)
        key = cache_key(DECIMALS, asset_address)
        async with self._lock(key):
            cached = self._cache.get(key)
            if cached is not MISSING:
                return cached.value

            token = self._contracts.token(asset_address)
            decimals = int(await call(token.functions.decimals(), "decimals"))

            self._cache.set(key, Decimals(decimals), INFINITE_TTL)
            return decimals

    async def resolve_price(self, asset_address: str) -> float:
        """Get the USD price of one whole token.

        The oracle quotes prices in the native currency, so the USD price is
        triangulated through the oracle's native price of USDC.
        """
        asset_address = self._addresses.normalize_asset(asset_address)
        key = cache_key(PRICE, asset_address)
        async with self._lock(key):
            cached = self._cache.get(key)
            if cached is not MISSING:
                return cached.value

            oracle = self._contracts.oracle
            checksum_address = AsyncWeb3.to_checksum_address(asset_address)
            price_in_native = format_units(
                await call(oracle.functions.price(checksum_address), "price"),
                MANTISSA_DECIMALS,
            )
            usdc_in_native = format_units(
                await call(oracle.functions.price(self._addresses.usdc), "price"),
                MANTISSA_DECIMALS,
            )
            if usdc_in_native == 0:
                raise ValueError(f"Oracle returned a zero USDC price ({self._addresses.usdc})")

            native_usd_price = 1 / usdc_in_native
            price = price_in_native * native_usd_price

            logger.debug(f"Price of {asset_address}: ${price:,.4f}")
            self._cache.set(key, Price(price))
            return price

    async def resolve_market(self, market_address: str) -> MarketInfo:
        key = cache_key(MARKETS, market_address)
        async with self._lock(key):
            cached = self._cache.get(key)
            if cached is not MISSING:
                return cached

            comptroller = self._contracts.comptroller
            record = await call(
                comptroller.functions.markets(AsyncWeb3.to_checksum_address(market_address)),
                "markets",
            )
            info = MarketInfo(
                is_listed=bool(record[0]),
                collateral_factor=format_units(record[1], MANTISSA_DECIMALS),
            )

            self._cache.set(key, info)
            return info
