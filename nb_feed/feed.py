from __future__ import annotations

import logging
from typing import Optional

from nb_core.symbols import SymbolRegistry, parse_pair
from nb_core.types import CurrencyPair

from .base import EventStreamOpener, SnapshotSource
from .rest import NamebaseRestClient
from .settings import FeedSettings
from .subscription import DepthSubscription, TradeSubscription
from .ws_stream import NamebaseStreamOpener

log = logging.getLogger("feed")


class DepthFeed:
    """Entry point: hands out independent per-pair subscriptions.

    Subscriptions share the collaborators but no mutable state; each owns its
    own book, transport and channel.
    """

    def __init__(
        self,
        snapshots: Optional[SnapshotSource] = None,
        opener: Optional[EventStreamOpener] = None,
        *,
        symbols: Optional[SymbolRegistry] = None,
        settings: Optional[FeedSettings] = None,
    ) -> None:
        self.settings = settings or FeedSettings.from_env()
        self.snapshots = snapshots or NamebaseRestClient(self.settings)
        self.opener = opener or NamebaseStreamOpener(self.settings)
        self.symbols = symbols

    @classmethod
    def from_settings(cls, settings: Optional[FeedSettings] = None, *, load_symbols: bool = True) -> "DepthFeed":
        """Build a feed against the live venue, loading the symbol list once."""
        settings = settings or FeedSettings.from_env()
        rest = NamebaseRestClient(settings)
        symbols = rest.exchange_info() if load_symbols else None
        if symbols is not None:
            log.info("Loaded %d symbols", len(symbols))
        return cls(rest, NamebaseStreamOpener(settings), symbols=symbols, settings=settings)

    def resolve_pair(self, pair: str | CurrencyPair) -> CurrencyPair:
        """Raises ``UnsupportedPairError`` for pairs the loaded registry does not list."""
        if self.symbols is not None:
            return self.symbols.resolve(pair)
        return parse_pair(pair)

    def _session_kwargs(self) -> dict:
        s = self.settings
        return {
            "resync_max_attempts": s.resync_max_attempts,
            "resync_backoff_s": s.resync_backoff_s,
            "resync_backoff_max_s": s.resync_backoff_max_s,
        }

    async def subscribe(self, pair: str | CurrencyPair, *, depth: Optional[int] = None) -> DepthSubscription:
        """Start a depth subscription.

        Raises ``ConnectError`` when the first dial or snapshot fails.
        """
        resolved = self.resolve_pair(pair)
        sub = DepthSubscription(
            resolved,
            self.snapshots,
            self.opener,
            depth=depth or self.settings.snapshot_depth,
            strict_gaps=self.settings.strict_gaps,
            **self._session_kwargs(),
        )
        await sub.start()
        return sub

    async def subscribe_trades(self, pair: str | CurrencyPair) -> TradeSubscription:
        sub = TradeSubscription(self.resolve_pair(pair), self.opener, **self._session_kwargs())
        await sub.start()
        return sub
