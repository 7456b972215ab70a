from unittest.mock import AsyncMock, MagicMock

import pytest

from lending_exporter.protocols.comptroller import (
    NULL_ADDRESS,
    USDC_ADDRESS,
    WETH_ADDRESS,
    AddressBook,
    ComptrollerContracts,
)
from lending_exporter.services.cache import TTLCache
from lending_exporter.services.market_data import MarketDataResolver

WALLET = "0x1234567890123456789012345678901234567890"
COMPTROLLER = "0x1111111111111111111111111111111111111111"
ORACLE = "0x2222222222222222222222222222222222222222"
MARKET_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
MARKET_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
MARKET_ETH = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
TOKEN_X = "0xcccccccccccccccccccccccccccccccccccccccc"
TOKEN_Y = "0xdddddddddddddddddddddddddddddddddddddddd"

E18 = 10 ** 18


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _returning(value=None, side_effect=None) -> MagicMock:
    bound = MagicMock()
    bound.call = AsyncMock(return_value=value, side_effect=side_effect)
    return bound


class FakeChain:
    """In-memory stand-in for the comptroller, markets, tokens and oracle.

    Contract objects are plain MagicMocks keyed by lower-cased address, so
    tests can inspect ``contract.functions.<name>`` call counts.
    """

    def __init__(self):
        self.contracts: dict[str, MagicMock] = {}
        self.prices: dict[str, int] = {}
        self.market_records: dict[str, tuple] = {}
        self.assets_in: dict[str, list] = {}
        self.web3 = MagicMock()
        self.web3.eth.contract.side_effect = self._contract

        self.oracle.functions.price.side_effect = self._price
        self.comptroller.functions.markets.side_effect = self._market_record
        self.comptroller.functions.getAssetsIn.side_effect = self._assets_in

    def _contract(self, address: str, abi=None) -> MagicMock:
        return self.contracts.setdefault(address.lower(), MagicMock())

    def get(self, address: str) -> MagicMock:
        return self._contract(address)

    @property
    def oracle(self) -> MagicMock:
        return self.get(ORACLE)

    @property
    def comptroller(self) -> MagicMock:
        return self.get(COMPTROLLER)

    def _price(self, address: str) -> MagicMock:
        raw = self.prices.get(address.lower())
        if raw is None:
            return _returning(side_effect=RuntimeError(f"execution reverted: no price for {address}"))
        return _returning(raw)

    def _market_record(self, address: str) -> MagicMock:
        record = self.market_records.get(address.lower())
        if record is None:
            return _returning(side_effect=RuntimeError(f"execution reverted: unknown market {address}"))
        return _returning(record)

    def _assets_in(self, wallet: str) -> MagicMock:
        return _returning(list(self.assets_in.get(wallet.lower(), [])))

    def set_price(self, asset: str, native_price: float) -> None:
        self.prices[asset.lower()] = int(round(native_price * E18))

    def set_decimals(self, token: str, decimals: int) -> None:
        self.get(token).functions.decimals.return_value = _returning(decimals)

    def add_market(
        self,
        market: str,
        underlying: str,
        *,
        balance: int = 0,
        exchange_rate: int = 0,
        borrow: int = 0,
        listed: bool = True,
        collateral_factor: float = 0.0,
    ) -> MagicMock:
        contract = self.get(market)
        functions = contract.functions
        functions.underlying.return_value = _returning(underlying)
        functions.balanceOf.return_value = _returning(balance)
        functions.exchangeRateStored.return_value = _returning(exchange_rate)
        functions.borrowBalanceStored.return_value = _returning(borrow)
        self.market_records[market.lower()] = (listed, int(round(collateral_factor * 100)) * 10 ** 16)
        return contract

    def enter_markets(self, wallet: str, markets: list) -> None:
        self.assets_in[wallet.lower()] = markets


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chain():
    chain = FakeChain()
    chain.set_price(USDC_ADDRESS, 0.1)
    return chain


@pytest.fixture
def address_book():
    return AddressBook(
        comptroller=COMPTROLLER,
        oracle=ORACLE,
        null_address=NULL_ADDRESS,
        wrapped_native=WETH_ADDRESS,
        usdc=USDC_ADDRESS,
    )


@pytest.fixture
def contracts(chain, address_book):
    return ComptrollerContracts(chain.web3, address_book)


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl_seconds=600, check_period_seconds=200, clock=clock)


@pytest.fixture
def resolver(contracts, cache):
    return MarketDataResolver(contracts, cache)


def setup_two_markets(chain: FakeChain) -> None:
    """Market A supplies $1000 (listed, CF 0.75); market B borrows $500 (unlisted)."""
    # TOKEN_X: 18 decimals, 200 native * 10 USD/native = $2000
    chain.set_decimals(TOKEN_X, 18)
    chain.set_price(TOKEN_X, 200)
    # 50 cTokens at 0.01 underlying each = 0.5 TOKEN_X = $1000
    chain.add_market(
        MARKET_A,
        TOKEN_X,
        balance=50 * 10 ** 8,
        exchange_rate=10 ** 26,
        borrow=0,
        listed=True,
        collateral_factor=0.75,
    )

    # TOKEN_Y: 6 decimals, 0.1 native = $1
    chain.set_decimals(TOKEN_Y, 6)
    chain.set_price(TOKEN_Y, 0.1)
    chain.add_market(
        MARKET_B,
        TOKEN_Y,
        balance=0,
        exchange_rate=2 * 10 ** 14,
        borrow=500 * 10 ** 6,
        listed=False,
        collateral_factor=0.8,
    )

    chain.enter_markets(WALLET, [MARKET_A, MARKET_B])
