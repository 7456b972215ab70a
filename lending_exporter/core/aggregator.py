"""Position aggregation for a single wallet.

Walks every market the wallet has entered on the comptroller, converts the raw
market balances into USD and sums them into a ``WalletPosition``.
"""

import logging

from web3 import AsyncWeb3

from lending_exporter.protocols.base import MarketPosition, WalletPosition
from lending_exporter.protocols.comptroller import ComptrollerContracts
from lending_exporter.services.market_data import MarketDataResolver, format_units
from lending_exporter.services.rpc import call

logger = logging.getLogger(__name__)

# cToken balances always carry 8 decimals
MARKET_TOKEN_DECIMALS = 8
# exchangeRateStored is scaled by 1e(18 - 8 + underlying decimals)
EXCHANGE_RATE_EXTRA_DECIMALS = 10


class PositionAggregator:
    def __init__(
        self,
        contracts: ComptrollerContracts,
        resolver: MarketDataResolver,
        compute_limit: bool = True,
    ):
        self._contracts = contracts
        self._resolver = resolver
        self._compute_limit = compute_limit

    @property
    def compute_limit(self) -> bool:
        return self._compute_limit

    async def compute_position(self, wallet_address: str) -> WalletPosition:
        """Compute USD supplied, borrowed and borrow limit for a wallet.

        Any failed read aborts the whole computation; no partial totals are
        returned.
        """
        checksum_address = AsyncWeb3.to_checksum_address(wallet_address)
        position = WalletPosition(wallet_address=checksum_address)

        markets = await call(
            self._contracts.comptroller.functions.getAssetsIn(checksum_address),
            "getAssetsIn",
        )

        for market_address in markets:
            position.add(await self._compute_market(checksum_address, market_address))

        logger.debug(
            f"{checksum_address}: {len(position.markets)} markets, "
            f"${position.supplied:,.2f} supplied, ${position.borrowed:,.2f} borrowed"
        )
        return position

    async def _compute_market(self, wallet_address: str, market_address: str) -> MarketPosition:
        market = self._contracts.market(market_address)

        balance = format_units(
            await call(market.functions.balanceOf(wallet_address), "balanceOf"),
            MARKET_TOKEN_DECIMALS,
        )

        underlying = await self._resolver.resolve_underlying(market_address)
        decimals = await self._resolver.resolve_decimals(underlying)

        exchange_rate = format_units(
            await call(market.functions.exchangeRateStored(), "exchangeRateStored"),
            decimals + EXCHANGE_RATE_EXTRA_DECIMALS,
        )
        supply_balance = balance * exchange_rate
        borrow_balance = format_units(
            await call(market.functions.borrowBalanceStored(wallet_address), "borrowBalanceStored"),
            decimals,
        )

        price = await self._resolver.resolve_price(underlying)
        supplied_usd = supply_balance * price
        borrowed_usd = borrow_balance * price

        limit_usd = 0.0
        is_listed = None
        if self._compute_limit:
            info = await self._resolver.resolve_market(market_address)
            is_listed = info.is_listed
            if info.is_listed:
                limit_usd = supplied_usd * info.collateral_factor

        return MarketPosition(
            market_address=market_address,
            underlying_address=underlying,
            decimals=decimals,
            price_usd=price,
            supply_balance=supply_balance,
            borrow_balance=borrow_balance,
            supplied_usd=supplied_usd,
            borrowed_usd=borrowed_usd,
            limit_usd=limit_usd,
            is_listed=is_listed,
        )
