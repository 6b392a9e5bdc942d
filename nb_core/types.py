from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class CurrencyPair:
    base: str
    quote: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "base", self.base.strip().upper())
        object.__setattr__(self, "quote", self.quote.strip().upper())

    @property
    def symbol(self) -> str:
        """Venue symbol, e.g. ``HNSBTC``."""
        return f"{self.base}{self.quote}"

    def __str__(self) -> str:
        return self.symbol


@dataclass(frozen=True)
class PriceLevel:
    """Aggregate resting quantity at one price. ``quantity == 0`` means remove."""

    price: Decimal
    quantity: Decimal


Levels = Tuple[PriceLevel, ...]


@dataclass(frozen=True)
class DepthDiffEvent:
    first_event_id: int
    last_event_id: int
    event_time: int
    bids: Levels = ()
    asks: Levels = ()
    symbol: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks


@dataclass(frozen=True)
class OrderBook:
    """Immutable full-book view.

    Bids are best (highest) first, asks are best (lowest) first. Instances
    handed to consumers never share storage with the engine's live book.
    """

    pair: Optional[CurrencyPair]
    bids: Levels
    asks: Levels
    last_event_id: int
    timestamp: int = 0

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    def top(self, n: int) -> Tuple[Levels, Levels]:
        if n <= 0:
            return (), ()
        return self.bids[:n], self.asks[:n]


@dataclass(frozen=True)
class Trade:
    trade_id: int
    price: Decimal
    quantity: Decimal
    is_buyer_maker: bool
    created_at: int
    event_time: int
    symbol: Optional[str] = None


@dataclass(frozen=True)
class SymbolInfo:
    symbol: str
    status: str
    base_asset: str
    base_precision: int
    quote_asset: str
    quote_precision: int
    order_types: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def pair(self) -> CurrencyPair:
        return CurrencyPair(self.base_asset, self.quote_asset)
