"""Order book data structures and the I/O-free sync logic."""

from .book_side import BookSide
from .errors import (
    ConnectError,
    DecodeError,
    FatalReconnectError,
    FeedError,
    TransientStreamError,
    UnsupportedPairError,
)
from .local_orderbook import LocalOrderBook
from .sync_engine import OrderBookSyncEngine, SyncResult
from .symbols import SymbolRegistry, parse_pair
from .types import CurrencyPair, DepthDiffEvent, OrderBook, PriceLevel, SymbolInfo, Trade

__all__ = [
    "BookSide",
    "ConnectError",
    "CurrencyPair",
    "DecodeError",
    "DepthDiffEvent",
    "FatalReconnectError",
    "FeedError",
    "LocalOrderBook",
    "OrderBook",
    "OrderBookSyncEngine",
    "PriceLevel",
    "SymbolInfo",
    "SymbolRegistry",
    "SyncResult",
    "Trade",
    "TransientStreamError",
    "UnsupportedPairError",
    "parse_pair",
]
