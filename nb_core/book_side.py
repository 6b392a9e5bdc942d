from __future__ import annotations

import operator
from decimal import Decimal
from typing import Callable, Iterator, List, Optional

from sortedcontainers import SortedDict

from .types import Levels, PriceLevel

SortKey = Callable[[Decimal], Decimal]

# Asks: lowest price first. Bids: highest price first.
ASCENDING: Optional[SortKey] = None
DESCENDING: SortKey = operator.neg


class BookSide:
    """One side of an L2 book: unique prices kept in best-first order.

    The ordering is the only thing that differs between bids and asks, so it
    is injected as a sort key instead of duplicating the update logic.
    """

    def __init__(self, sort_key: Optional[SortKey] = ASCENDING) -> None:
        self.sort_key = sort_key
        if sort_key is None:
            self._levels: SortedDict = SortedDict()
        else:
            self._levels = SortedDict(sort_key)

    @classmethod
    def asks(cls) -> "BookSide":
        return cls(ASCENDING)

    @classmethod
    def bids(cls) -> "BookSide":
        return cls(DESCENDING)

    def upsert(self, level: PriceLevel) -> None:
        """Insert, replace or (for zero quantity) remove the level at ``level.price``."""
        if level.quantity == 0:
            self._levels.pop(level.price, None)
        else:
            self._levels[level.price] = level

    def clear(self) -> None:
        self._levels.clear()

    def __len__(self) -> int:
        return len(self._levels)

    def __iter__(self) -> Iterator[PriceLevel]:
        return iter(self._levels.values())

    def __contains__(self, price: object) -> bool:
        return price in self._levels

    def get(self, price: Decimal) -> Optional[PriceLevel]:
        return self._levels.get(price)

    def best(self) -> Optional[PriceLevel]:
        if not self._levels:
            return None
        return self._levels.peekitem(0)[1]

    def prices(self) -> List[Decimal]:
        return list(self._levels.keys())

    def levels(self, n: Optional[int] = None) -> Levels:
        """Best-first copy of the side, optionally cut to ``n`` levels."""
        values = self._levels.values()
        if n is None:
            return tuple(values)
        if n <= 0:
            return ()
        return tuple(values[:n])
