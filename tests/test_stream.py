"""Tests for the prediction stream and watch-list cursor."""

import pytest

from autopilot.discovery.stream import PredictionStream, PredictionStreamError
from autopilot.discovery.watchlists import BEAR_LIST, PRIMARY_LIST, WatchlistCursor
from tests.helpers import FakeBackend, make_batch


class _Collector:
    def __init__(self):
        self.batches = []
        self.errors = []
        self.finalized = 0

    async def on_next(self, batch):
        self.batches.append(batch.label)

    def on_error(self, exc):
        self.errors.append(exc)

    def finalize(self):
        self.finalized += 1


class TestPredictionStream:
    @pytest.mark.asyncio
    async def test_request_publishes_to_subscribers(self):
        backend = FakeBackend(predictions={"AAPL": make_batch("AAPL", [0.7])})
        stream = PredictionStream(backend)
        a, b = _Collector(), _Collector()
        stream.subscribe(a.on_next)
        stream.subscribe(b.on_next)

        await stream.request("AAPL")
        assert a.batches == ["AAPL"]
        assert b.batches == ["AAPL"]

    @pytest.mark.asyncio
    async def test_completes_after_max_items(self):
        stream = PredictionStream(FakeBackend())
        c = _Collector()
        sub = stream.subscribe(c.on_next, max_items=2, finalize=c.finalize)

        for symbol in ["A", "B", "C"]:
            await stream.publish(make_batch(symbol, [0.5]))
        assert c.batches == ["A", "B"]
        assert sub.received == 2
        assert not sub.active
        assert c.finalized == 1
        assert stream.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_error_terminates_and_finalizes_once(self):
        backend = FakeBackend(predictions={"AAPL": RuntimeError("model offline")})
        stream = PredictionStream(backend)
        c = _Collector()
        sub = stream.subscribe(c.on_next, on_error=c.on_error, finalize=c.finalize)

        await stream.request("AAPL")
        assert len(c.errors) == 1
        assert isinstance(c.errors[0], PredictionStreamError)
        assert not sub.active
        assert c.finalized == 1

        sub.cancel()
        await stream.publish(make_batch("MSFT", [0.5]))
        assert c.finalized == 1
        assert c.batches == []

    @pytest.mark.asyncio
    async def test_async_error_handler_awaited(self):
        stream = PredictionStream(FakeBackend())
        seen = []

        async def on_error(exc):
            seen.append(str(exc))

        async def on_next(batch):
            pass

        stream.subscribe(on_next, on_error=on_error)
        await stream.publish_error(PredictionStreamError("down"))
        assert seen == ["down"]

    @pytest.mark.asyncio
    async def test_cancel_runs_finalize(self):
        stream = PredictionStream(FakeBackend())
        c = _Collector()
        sub = stream.subscribe(c.on_next, finalize=c.finalize)
        sub.cancel()
        sub.cancel()
        assert c.finalized == 1
        await stream.publish(make_batch("A", [0.5]))
        assert c.batches == []

    @pytest.mark.asyncio
    async def test_subscriber_failure_does_not_break_delivery(self):
        stream = PredictionStream(FakeBackend())
        good = _Collector()

        async def broken(batch):
            raise ValueError("bad subscriber")

        bad_sub = stream.subscribe(broken, max_items=5)
        stream.subscribe(good.on_next)
        await stream.publish(make_batch("A", [0.5]))
        assert good.batches == ["A"]
        assert bad_sub.received == 1
        assert bad_sub.active


class TestWatchlistCursor:
    def test_wrapping(self):
        cursor = WatchlistCursor(["A", "B"])
        assert [cursor.next() for _ in range(5)] == ["A", "B", "A", "B", "A"]

    def test_non_wrapping_exhausts(self):
        cursor = WatchlistCursor(["A", "B"], wrap=False)
        assert [cursor.next() for _ in range(4)] == ["A", "B", None, None]

    def test_empty_list(self):
        assert WatchlistCursor([]).next() is None

    def test_lists_have_no_duplicates(self):
        assert len(set(PRIMARY_LIST)) == len(PRIMARY_LIST)
        assert len(set(BEAR_LIST)) == len(BEAR_LIST)
