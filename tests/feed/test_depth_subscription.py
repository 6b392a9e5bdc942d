from __future__ import annotations

import asyncio

import pytest

from nb_core.errors import ConnectError, FatalReconnectError, TransientStreamError
from nb_core.types import CurrencyPair
from nb_feed.subscription import DepthSubscription, SessionPhase
from tests._fakes import FakeOpener, FakeSnapshots, FakeTransport, as_tuples, depth_msg, snapshot

PAIR = CurrencyPair("HNS", "BTC")


async def _next(sub, timeout=2.0):
    return await asyncio.wait_for(sub.get(), timeout)


def _sub(snapshots, opener, **kwargs) -> DepthSubscription:
    return DepthSubscription(PAIR, snapshots, opener, depth=50, **kwargs)


def test_applied_diff_publishes_merged_book():
    async def scenario():
        transport = FakeTransport([depth_msg(6, 6, bids=[(9, 3)], asks=[(10, 0)])])
        snaps = FakeSnapshots(snapshot(5, bids=[(9, 1), (8, 2)], asks=[(10, 1), (11, 2)]))
        sub = _sub(snaps, FakeOpener(transport))
        await sub.start()
        assert sub.phase is SessionPhase.STREAMING

        book = await _next(sub)
        await sub.stop()
        return sub, snaps, book

    sub, snaps, book = asyncio.run(scenario())

    assert snaps.calls == [(PAIR, 50)]
    assert as_tuples(book.asks) == [(11.0, 2.0)]
    assert as_tuples(book.bids) == [(9.0, 3.0), (8.0, 2.0)]
    assert book.last_event_id == 6
    assert book.timestamp == 6000
    assert book.pair == PAIR
    assert sub.stats()["applied"] == 1


def test_stale_heartbeat_and_foreign_symbol_are_not_published():
    async def scenario():
        transport = FakeTransport(
            [
                depth_msg(100, 101, bids=[(9, 5)]),  # overlaps snapshot
                depth_msg(-1, -1),  # heartbeat
                depth_msg(101, 101, bids=[(9, 7)], symbol="HNSUSDT"),
                depth_msg(101, 102, bids=[(9, 2)]),
            ]
        )
        sub = _sub(FakeSnapshots(snapshot(100, bids=[(9, 1)], asks=[(10, 1)])), FakeOpener(transport))
        await sub.start()
        book = await _next(sub)
        await sub.stop()
        return sub, book

    sub, book = asyncio.run(scenario())

    assert book.last_event_id == 102
    assert as_tuples(book.bids) == [(9.0, 2.0)]
    assert sub.published == 1
    stats = sub.stats()
    assert stats["stale"] == 1
    assert stats["heartbeat"] == 1


def test_malformed_message_is_dropped_and_stream_continues():
    async def scenario():
        transport = FakeTransport(
            [
                '{"firstEventId": 6, "lastEventId": 6, "bids": [["0.06844"]]}',
                "not json",
                depth_msg(6, 6, asks=[(10, 4)]),
            ]
        )
        sub = _sub(FakeSnapshots(snapshot(5, bids=[(9, 1)], asks=[(10, 1)])), FakeOpener(transport))
        await sub.start()
        book = await _next(sub)
        await sub.stop()
        return sub, book

    sub, book = asyncio.run(scenario())

    assert sub.decode_errors == 2
    assert as_tuples(book.asks) == [(10.0, 4.0)]
    assert as_tuples(book.bids) == [(9.0, 1.0)]


def test_read_error_resyncs_from_fresh_snapshot_without_residue():
    async def scenario():
        first = FakeTransport(
            [
                depth_msg(11, 11, bids=[(7, 7)], asks=[(12, 1)]),
                TransientStreamError("connection reset"),
            ]
        )
        second = FakeTransport(
            [
                depth_msg(40, 50, bids=[(5, 9)]),  # already in the fresh snapshot
                depth_msg(51, 51, asks=[(6, 0), (6.5, 1)]),
            ]
        )
        snaps = FakeSnapshots(
            snapshot(10, bids=[(9, 1)], asks=[(10, 1)]),
            snapshot(50, bids=[(5, 2)], asks=[(6, 2)]),
        )
        opener = FakeOpener(first, second)
        sub = _sub(snaps, opener)
        await sub.start()

        before = await _next(sub)
        after = await _next(sub)
        await sub.stop()
        return sub, opener, first, before, after

    sub, opener, first, before, after = asyncio.run(scenario())

    assert as_tuples(before.bids) == [(9.0, 1.0), (7.0, 7.0)]
    assert first.closed is True
    assert len(opener.opened) == 2
    assert sub.resyncs == 1
    assert after.last_event_id == 51
    assert as_tuples(after.bids) == [(5.0, 2.0)]
    assert as_tuples(after.asks) == [(6.5, 1.0)]


def test_failed_reconnect_terminates_and_closes_channel():
    async def scenario():
        transport = FakeTransport([TransientStreamError("eof")])
        opener = FakeOpener(transport, ConnectError("dial refused"))
        sub = _sub(FakeSnapshots(snapshot(1)), opener)
        await sub.start()

        items = [item async for item in sub]
        await sub.wait_closed()
        # closed channels stay closed
        again = await _next(sub)
        return sub, transport, items, again

    sub, transport, items, again = asyncio.run(scenario())

    assert items == []
    assert again is None
    assert sub.done
    assert sub.phase is SessionPhase.TERMINATED
    assert isinstance(sub.error, FatalReconnectError)
    assert transport.closed


def test_resync_snapshot_failure_retries_after_reopening_stream():
    async def scenario():
        t1 = FakeTransport([TransientStreamError("eof")])
        t2 = FakeTransport([])
        t3 = FakeTransport([depth_msg(21, 21, bids=[(3, 3)])])
        snaps = FakeSnapshots(
            snapshot(1),
            ConnectError("http code: 502"),
            snapshot(20, bids=[(2, 2)]),
        )
        opener = FakeOpener(t1, t2, t3)
        sub = _sub(snaps, opener, resync_max_attempts=2)
        await sub.start()
        book = await _next(sub)
        await sub.stop()
        return sub, t2, book

    sub, t2, book = asyncio.run(scenario())

    assert t2.closed
    assert sub.resyncs == 1
    assert sub.error is None
    assert as_tuples(book.bids) == [(3.0, 3.0), (2.0, 2.0)]


def test_resync_gives_up_after_max_attempts():
    async def scenario():
        snaps = FakeSnapshots(snapshot(1), ConnectError("down"), ConnectError("down"))
        opener = FakeOpener(FakeTransport([TransientStreamError("eof")]), FakeTransport([]), FakeTransport([]))
        sub = _sub(snaps, opener, resync_max_attempts=2)
        await sub.start()
        await sub.wait_closed()
        return sub, await _next(sub)

    sub, item = asyncio.run(scenario())

    assert item is None
    assert isinstance(sub.error, FatalReconnectError)
    assert "2 attempts" in str(sub.error)


def test_strict_gaps_trigger_resync():
    async def scenario():
        t1 = FakeTransport([depth_msg(13, 13, bids=[(4, 4)])])
        t2 = FakeTransport([depth_msg(31, 31, bids=[(8, 8)])])
        snaps = FakeSnapshots(snapshot(10, bids=[(1, 1)]), snapshot(30, bids=[(2, 2)]))
        sub = _sub(snaps, FakeOpener(t1, t2), strict_gaps=True)
        await sub.start()
        book = await _next(sub)
        await sub.stop()
        return sub, book

    sub, book = asyncio.run(scenario())

    assert sub.resyncs == 1
    assert sub.stats()["gap"] == 1
    assert as_tuples(book.bids) == [(8.0, 8.0), (2.0, 2.0)]


def test_dial_failure_is_reported_at_subscribe():
    async def scenario():
        sub = _sub(FakeSnapshots(snapshot(1)), FakeOpener(ConnectError("refused")))
        with pytest.raises(ConnectError):
            await sub.start()
        return sub, await _next(sub)

    sub, item = asyncio.run(scenario())
    assert sub.phase is SessionPhase.TERMINATED
    assert item is None


def test_first_snapshot_failure_is_reported_and_closes_stream():
    async def scenario():
        transport = FakeTransport([])
        sub = _sub(FakeSnapshots(ConnectError("timeout")), FakeOpener(transport))
        with pytest.raises(ConnectError):
            await sub.start()
        return sub, transport

    sub, transport = asyncio.run(scenario())
    assert transport.closed
    assert sub.done


def test_slow_consumer_backpressures_reader():
    async def scenario():
        transport = FakeTransport(
            [
                depth_msg(2, 2, bids=[(1, 1)]),
                depth_msg(3, 3, bids=[(1, 2)]),
                depth_msg(4, 4, bids=[(1, 3)]),
            ]
        )
        sub = _sub(FakeSnapshots(snapshot(1)), FakeOpener(transport))
        await sub.start()
        for _ in range(20):
            await asyncio.sleep(0)
        published_before = sub.published
        unread = len(transport.script)

        first = await _next(sub)
        second = await _next(sub)
        third = await _next(sub)
        await sub.stop()
        return published_before, unread, [first, second, third]

    published_before, unread, books = asyncio.run(scenario())

    assert published_before == 1
    assert unread == 1
    assert [b.last_event_id for b in books] == [2, 3, 4]


def test_stop_closes_transport_and_channel():
    async def scenario():
        transport = FakeTransport([])
        sub = _sub(FakeSnapshots(snapshot(1)), FakeOpener(transport))
        await sub.start()
        async with sub:
            await asyncio.sleep(0)
        return sub, transport, await _next(sub)

    sub, transport, item = asyncio.run(scenario())

    assert transport.closed
    assert item is None
    assert sub.phase is SessionPhase.TERMINATED
    assert sub.error is None


def test_start_twice_is_rejected():
    async def scenario():
        sub = _sub(FakeSnapshots(snapshot(1)), FakeOpener(FakeTransport([])))
        await sub.start()
        try:
            with pytest.raises(RuntimeError):
                await sub.start()
        finally:
            await sub.stop()

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "bad_msg",
    [
        '{"firstEventId": 6, "lastEventId": 6, "bids": 5}',
        '{"firstEventId": 6, "lastEventId": 6, "bids": [["9", "2"]], "symbol": 7}',
        '{"firstEventId": 6.5, "lastEventId": 6, "bids": [["9", "2"]]}',
    ],
)
def test_wrongly_typed_fields_are_dropped_and_stream_continues(bad_msg):
    async def scenario():
        transport = FakeTransport([bad_msg, depth_msg(6, 6, asks=[(10, 4)])])
        sub = _sub(FakeSnapshots(snapshot(5, bids=[(9, 1)], asks=[(10, 1)])), FakeOpener(transport))
        await sub.start()
        book = await _next(sub)
        await sub.stop()
        return sub, book

    sub, book = asyncio.run(scenario())

    assert book is not None
    assert sub.error is None
    assert sub.decode_errors == 1
    assert book.last_event_id == 6
    assert as_tuples(book.asks) == [(10.0, 4.0)]
    assert as_tuples(book.bids) == [(9.0, 1.0)]
