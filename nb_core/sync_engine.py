from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from .local_orderbook import LocalOrderBook
from .types import CurrencyPair, DepthDiffEvent, OrderBook


@dataclass
class SyncResult:
    action: str  # "no_snapshot" | "heartbeat" | "stale" | "applied" | "gap"
    details: str = ""

    @property
    def applied(self) -> bool:
        return self.action == "applied"


class OrderBookSyncEngine:
    """Pure state machine for snapshot + diff-stream book synchronization.

    This module is intentionally I/O-free (no WS, no REST). The subscription
    worker feeds it decoded events and publishes whenever an event is applied.

    Key behaviors:
      - nothing is applied until a snapshot has been adopted
      - events without level updates are heartbeats
      - an event is applied only if firstEventId > book.lastEventId
      - with strict_gaps, firstEventId > lastEventId + 1 reports a gap so the
        caller can resync; otherwise gaps are tolerated
    """

    def __init__(self, pair: Optional[CurrencyPair] = None, strict_gaps: bool = False):
        self.pair = pair
        self.strict_gaps = bool(strict_gaps)
        self.lob: Optional[LocalOrderBook] = None
        self.counters: Dict[str, int] = {
            "applied": 0,
            "stale": 0,
            "heartbeat": 0,
            "gap": 0,
            "no_snapshot": 0,
        }

    @property
    def snapshot_loaded(self) -> bool:
        return self.lob is not None

    def adopt_snapshot(self, snapshot: OrderBook) -> LocalOrderBook:
        """Replace the book with a fresh one built from ``snapshot``.

        Nothing from the previous book survives.
        """
        if snapshot.last_event_id is None:
            raise ValueError("Snapshot missing last_event_id; cannot sync.")
        lob = LocalOrderBook.from_snapshot(snapshot)
        if lob.pair is None:
            lob.pair = self.pair
        self.lob = lob
        return lob

    def reset_for_resync(self) -> None:
        self.lob = None

    def feed(self, event: DepthDiffEvent) -> SyncResult:
        """Feed one decoded diff event."""
        if self.lob is None:
            return self._count(SyncResult("no_snapshot"))

        if event.is_empty:
            return self._count(SyncResult("heartbeat"))

        last = int(self.lob.last_event_id)

        if not self.lob.accepts(event):
            return self._count(
                SyncResult("stale", f"first={event.first_event_id} lastEventId={last}")
            )

        if self.strict_gaps and event.first_event_id > last + 1:
            return self._count(
                SyncResult("gap", f"gap first={event.first_event_id} lastEventId={last}")
            )

        self.lob.apply_diff(event)
        return self._count(SyncResult("applied", f"lastEventId={self.lob.last_event_id}"))

    def order_book(self) -> Optional[OrderBook]:
        if self.lob is None:
            return None
        return self.lob.to_order_book()

    def _count(self, result: SyncResult) -> SyncResult:
        self.counters[result.action] = self.counters.get(result.action, 0) + 1
        return result
