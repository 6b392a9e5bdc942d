from __future__ import annotations

from abc import ABC, abstractmethod

from nb_core.types import CurrencyPair, OrderBook


class SnapshotSource(ABC):
    """Request/response side of the venue: full depth snapshots."""

    @abstractmethod
    def fetch_snapshot(self, pair: CurrencyPair, depth: int) -> OrderBook:
        """Return a snapshot or raise ``ConnectError``. Blocking."""


class Transport(ABC):
    """One open, ordered event stream."""

    @abstractmethod
    async def recv(self) -> str | bytes:
        """Next encoded message; raises ``TransientStreamError`` on read failure."""

    @abstractmethod
    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""


class EventStreamOpener(ABC):
    """Dials the push side of the venue."""

    @abstractmethod
    async def open_depth_stream(self, pair: CurrencyPair) -> Transport:
        """Open a depth-diff stream or raise ``ConnectError``."""

    @abstractmethod
    async def open_trade_stream(self, pair: CurrencyPair) -> Transport:
        """Open a trade stream or raise ``ConnectError``."""
