from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, Dict, Optional

from nb_core.decoding import parse_depth_event, parse_trade
from nb_core.errors import ConnectError, DecodeError, FatalReconnectError, TransientStreamError
from nb_core.sync_engine import OrderBookSyncEngine
from nb_core.types import CurrencyPair, OrderBook

from .base import EventStreamOpener, SnapshotSource, Transport


class SessionPhase(str, Enum):
    CONNECTING = "connecting"
    SNAPSHOTTING = "snapshotting"
    STREAMING = "streaming"
    RESYNCING = "resyncing"
    TERMINATED = "terminated"


_CLOSED = object()


class StreamSession:
    """One worker task per pair, publishing into a bounded channel.

    The channel holds ``queue_size`` items (default 1) and ``put`` blocks, so
    a slow consumer backpressures the read loop instead of buffering. Iterate
    the session (``async for item in session``) to consume; iteration ends
    once the session terminates. ``stop()`` tears it down from the outside.
    """

    kind = "stream"

    def __init__(
        self,
        pair: CurrencyPair,
        opener: EventStreamOpener,
        *,
        queue_size: int = 1,
        resync_max_attempts: int = 3,
        resync_backoff_s: float = 0.0,
        resync_backoff_max_s: float = 30.0,
    ) -> None:
        self.pair = pair
        self._opener = opener
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, int(queue_size)))
        self._transport: Optional[Transport] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

        self.resync_max_attempts = max(1, int(resync_max_attempts))
        self.resync_backoff_s = max(0.0, float(resync_backoff_s))
        self.resync_backoff_max_s = max(self.resync_backoff_s, float(resync_backoff_max_s))

        self.phase = SessionPhase.CONNECTING
        self.error: Optional[BaseException] = None
        self.published = 0
        self.decode_errors = 0
        self.resyncs = 0
        self._log = logging.getLogger(f"{self.kind}.{pair.symbol}")

    # -- consumer side -------------------------------------------------

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item

    async def get(self) -> Optional[Any]:
        """Next published item, or None once the channel is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            # keep the marker so later readers see the closure too
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()
        return False

    @property
    def done(self) -> bool:
        return self.phase is SessionPhase.TERMINATED

    def stats(self) -> Dict[str, int]:
        return {
            "published": self.published,
            "decode_errors": self.decode_errors,
            "resyncs": self.resyncs,
        }

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> None:
        """Connect and prime synchronously, then hand off to the worker task.

        Raises ``ConnectError`` if the first dial or snapshot fails; the
        session is terminated in that case.
        """
        if self._task is not None:
            raise RuntimeError(f"{self.kind} session for {self.pair.symbol} already started")
        try:
            self.phase = SessionPhase.CONNECTING
            self._transport = await self._open()
            await self._prime()
        except BaseException:
            await self._close_transport()
            self.phase = SessionPhase.TERMINATED
            self._close_channel()
            raise
        self.phase = SessionPhase.STREAMING
        self._task = asyncio.create_task(self._run(), name=f"{self.kind}-{self.pair.symbol}")

    async def stop(self) -> None:
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        await self._close_transport()
        self.phase = SessionPhase.TERMINATED
        self._close_channel()

    async def wait_closed(self) -> None:
        if self._task is not None:
            await asyncio.wait([self._task])

    async def _run(self) -> None:
        try:
            await self._stream_loop()
        except FatalReconnectError as exc:
            self.error = exc
            self._log.error("Session terminated: %s", exc)
        except Exception as exc:
            self.error = exc
            self._log.exception("Unhandled exception in %s stream loop", self.kind)
        finally:
            await self._close_transport()
            self.phase = SessionPhase.TERMINATED
        await self._queue.put(_CLOSED)
        self._closed = True

    async def _stream_loop(self) -> None:
        while True:
            assert self._transport is not None
            try:
                raw = await self._transport.recv()
            except TransientStreamError as exc:
                self._log.error("Failed to read from stream: %s", exc)
                await self._reconnect(str(exc))
                continue
            await self._handle_message(raw)

    async def _reconnect(self, reason: str) -> None:
        """Close, reopen and re-prime. Gives up with ``FatalReconnectError``."""
        self.resyncs += 1
        self.phase = SessionPhase.RESYNCING
        self._log.warning("Resync triggered: %s", reason)
        await self._close_transport()
        self._reset()

        attempt = 0
        while True:
            attempt += 1
            delay = self._backoff_delay(attempt)
            if delay > 0:
                self._log.info("Reconnect in %.2fs (attempt %d)", delay, attempt)
                await asyncio.sleep(delay)

            self.phase = SessionPhase.CONNECTING
            try:
                self._transport = await self._open()
            except ConnectError as exc:
                raise FatalReconnectError(
                    f"failed to reconnect {self.kind} stream for {self.pair.symbol}: {exc}"
                ) from exc

            try:
                await self._prime()
            except ConnectError as exc:
                await self._close_transport()
                if attempt >= self.resync_max_attempts:
                    raise FatalReconnectError(
                        f"resync of {self.pair.symbol} failed after {attempt} attempts: {exc}"
                    ) from exc
                self._log.warning(
                    "Resync attempt %d/%d failed: %s", attempt, self.resync_max_attempts, exc
                )
                continue

            self.phase = SessionPhase.STREAMING
            return

    def _backoff_delay(self, attempt: int) -> float:
        base = self.resync_backoff_s
        cap = self.resync_backoff_max_s
        if base <= 0.0 or cap <= 0.0:
            return 0.0
        backoff = min(cap, base * (2 ** max(0, attempt - 1)))
        return backoff * (0.7 + 0.6 * random.random())

    async def _publish(self, item: Any) -> None:
        await self._queue.put(item)
        self.published += 1

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

    def _close_channel(self) -> None:
        if self._closed:
            return
        self._closed = True
        # drop anything unread so the close marker always fits
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(_CLOSED)

    # -- hooks ---------------------------------------------------------

    async def _open(self) -> Transport:
        raise NotImplementedError

    async def _prime(self) -> None:
        """Runs after every successful dial."""

    def _reset(self) -> None:
        """Drops state built from the old stream."""

    async def _handle_message(self, raw: Any) -> None:
        raise NotImplementedError


class DepthSubscription(StreamSession):
    """Keeps a local order book in sync and publishes a copy per applied diff."""

    kind = "depth"

    def __init__(
        self,
        pair: CurrencyPair,
        snapshots: SnapshotSource,
        opener: EventStreamOpener,
        *,
        depth: int = 50,
        strict_gaps: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(pair, opener, **kwargs)
        self._snapshots = snapshots
        self.depth = int(depth)
        self.engine = OrderBookSyncEngine(pair, strict_gaps=strict_gaps)

    def stats(self) -> Dict[str, int]:
        out = super().stats()
        out.update(self.engine.counters)
        return out

    async def _open(self) -> Transport:
        return await self._opener.open_depth_stream(self.pair)

    async def _prime(self) -> None:
        self.phase = SessionPhase.SNAPSHOTTING
        snapshot: OrderBook = await asyncio.to_thread(
            self._snapshots.fetch_snapshot, self.pair, self.depth
        )
        lob = self.engine.adopt_snapshot(snapshot)
        self._log.info("Snapshot adopted lastEventId=%s", lob.last_event_id)

    def _reset(self) -> None:
        self.engine.reset_for_resync()

    async def _handle_message(self, raw: Any) -> None:
        try:
            event = parse_depth_event(raw)
        except DecodeError as exc:
            self.decode_errors += 1
            self._log.warning("Dropping malformed depth message: %s, raw data: %.200r", exc, raw)
            return

        if event.symbol and event.symbol.upper() != self.pair.symbol:
            return

        result = self.engine.feed(event)
        if result.action == "gap":
            await self._reconnect(result.details)
            return
        if result.action == "stale":
            self._log.debug("Dropped stale event: %s", result.details)
            return
        if not result.applied:
            return

        book = self.engine.order_book()
        await self._publish(book)


class TradeSubscription(StreamSession):
    """Publishes decoded trades; reconnects on read error without any priming."""

    kind = "trades"

    async def _open(self) -> Transport:
        return await self._opener.open_trade_stream(self.pair)

    async def _handle_message(self, raw: Any) -> None:
        try:
            trade = parse_trade(raw)
        except DecodeError as exc:
            self.decode_errors += 1
            self._log.warning("Dropping malformed trade message: %s, raw data: %.200r", exc, raw)
            return
        if trade.symbol and trade.symbol.upper() != self.pair.symbol:
            return
        await self._publish(trade)
