"""Data models for lending positions.

A ``WalletPosition`` is rebuilt from scratch on every poll cycle from one
``MarketPosition`` per entered market. Nothing here is persisted.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List


def _percent(part: float, whole: float) -> float:
    if whole:
        return part / whole * 100
    return math.inf if part else 0.0


@dataclass
class Wallet:
    """A monitored wallet as configured."""
    name: str
    address: str


@dataclass
class MarketPosition:
    """One wallet's balances in a single lending market."""
    market_address: str
    underlying_address: str
    decimals: int
    price_usd: float            # USD per whole underlying token
    supply_balance: float       # Underlying units (e.g., 3.45 ETH)
    borrow_balance: float       # Underlying units
    supplied_usd: float
    borrowed_usd: float
    limit_usd: float = 0.0      # supplied_usd * collateral factor, 0 if unlisted
    is_listed: bool | None = None  # None when market metadata was not read


@dataclass
class WalletPosition:
    """Aggregated USD totals across every market a wallet has entered."""
    wallet_address: str
    supplied: float = 0.0
    borrowed: float = 0.0
    limit: float = 0.0
    markets: List[MarketPosition] = field(default_factory=list)

    def add(self, market: MarketPosition) -> None:
        self.markets.append(market)
        self.supplied += market.supplied_usd
        self.borrowed += market.borrowed_usd
        self.limit += market.limit_usd

    @property
    def limit_used_percent(self) -> float:
        """Borrowed as a percentage of the borrow limit.

        0 when nothing is borrowed, infinite when borrowing against no limit.
        """
        return _percent(self.borrowed, self.limit)

    @property
    def borrow_percent(self) -> float:
        """Borrowed as a percentage of supplied, with the same edge cases."""
        return _percent(self.borrowed, self.supplied)
