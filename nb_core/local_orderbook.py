from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .book_side import BookSide
from .types import CurrencyPair, DepthDiffEvent, Levels, OrderBook, PriceLevel


@dataclass
class LocalOrderBook:
    """Mutable L2 book owned by a single sync engine.

    Never hand this object to consumers; publish ``to_order_book()`` instead.
    """

    pair: Optional[CurrencyPair] = None
    bids: BookSide = field(default_factory=BookSide.bids)
    asks: BookSide = field(default_factory=BookSide.asks)
    last_event_id: Optional[int] = None
    timestamp: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: OrderBook) -> "LocalOrderBook":
        lob = cls(pair=snapshot.pair)
        lob.load_snapshot(snapshot.bids, snapshot.asks, snapshot.last_event_id, snapshot.timestamp)
        return lob

    def load_snapshot(
        self,
        bids: Iterable[PriceLevel],
        asks: Iterable[PriceLevel],
        last_event_id: int,
        timestamp: int = 0,
    ) -> None:
        self.bids.clear()
        self.asks.clear()
        for level in bids:
            self.bids.upsert(level)
        for level in asks:
            self.asks.upsert(level)
        self.last_event_id = int(last_event_id)
        self.timestamp = int(timestamp)

    def accepts(self, event: DepthDiffEvent) -> bool:
        """True if ``event`` starts after the last applied event id."""
        if self.last_event_id is None:
            return False
        return event.first_event_id > self.last_event_id

    def apply_diff(self, event: DepthDiffEvent) -> bool:
        """Apply ``event`` if it passes the sequence gate.

        Returns:
          True  -> applied
          False -> stale (overlaps what the book already reflects), book untouched
        """
        if not self.accepts(event):
            return False

        for level in event.bids:
            self.bids.upsert(level)

        for level in event.asks:
            self.asks.upsert(level)

        self.last_event_id = event.last_event_id
        self.timestamp = event.event_time
        return True

    def top_n(self, n: int) -> Tuple[Levels, Levels]:
        return self.bids.levels(n), self.asks.levels(n)

    def to_order_book(self) -> OrderBook:
        """Deep copy suitable for publishing."""
        return OrderBook(
            pair=self.pair,
            bids=self.bids.levels(),
            asks=self.asks.levels(),
            last_event_id=-1 if self.last_event_id is None else self.last_event_id,
            timestamp=self.timestamp,
        )
