"""Tests for the schedulers."""

import asyncio

import pytest

from groupthink.errors import SchedulerError
from groupthink.scheduling.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    def setup_method(self):
        self.scheduler = ManualScheduler()
        self.calls = []
        self.scheduler.register("record", self.calls.append)

    def test_fires_after_delay(self):
        self.scheduler.run_in(5, "record", {"n": 1})
        assert self.scheduler.advance(4) == 0
        assert self.calls == []
        assert self.scheduler.advance(1) == 1
        assert self.calls == [{"n": 1}]
        assert self.scheduler.now == 5

    def test_fires_in_due_order_fifo_on_ties(self):
        self.scheduler.run_in(10, "record", {"n": "late"})
        self.scheduler.run_in(5, "record", {"n": "a"})
        self.scheduler.run_in(5, "record", {"n": "b"})
        self.scheduler.advance(20)
        assert [c["n"] for c in self.calls] == ["a", "b", "late"]

    def test_callbacks_scheduled_while_advancing(self):
        def chain(payload):
            self.calls.append(payload)
            if payload["n"] < 3:
                self.scheduler.run_in(2, "chain", {"n": payload["n"] + 1})

        self.scheduler.register("chain", chain)
        self.scheduler.run_in(2, "chain", {"n": 1})
        assert self.scheduler.advance(5) == 2
        assert self.scheduler.pending() == 1
        assert self.scheduler.advance(1) == 1
        assert [c["n"] for c in self.calls] == [1, 2, 3]

    def test_payload_is_copied(self):
        payload = {"n": 1}
        self.scheduler.run_in(1, "record", payload)
        payload["n"] = 2
        self.scheduler.advance(1)
        assert self.calls == [{"n": 1}]

    def test_unknown_handler(self):
        with pytest.raises(SchedulerError):
            self.scheduler.run_in(1, "nope", {})

    def test_clock_never_moves_backwards(self):
        self.scheduler.advance(10)
        with pytest.raises(SchedulerError):
            self.scheduler.advance(-5)
        assert self.scheduler.now == 10

    def test_zero_advance_fires_due_callbacks(self):
        self.scheduler.run_in(0, "record", {"n": 1})
        assert self.scheduler.advance(0) == 1


class TestAsyncioScheduler:
    def test_fires_on_event_loop(self):
        calls = []

        async def scenario():
            scheduler = AsyncioScheduler()
            scheduler.register("record", calls.append)
            scheduler.run_in(0.01, "record", {"n": 1})
            assert scheduler.pending() == 1
            await asyncio.sleep(0.05)
            assert scheduler.pending() == 0

        asyncio.run(scenario())
        assert calls == [{"n": 1}]

    def test_handler_errors_are_logged(self, caplog):
        def boom(payload):
            raise RuntimeError("device offline")

        async def scenario():
            scheduler = AsyncioScheduler()
            scheduler.register("boom", boom)
            scheduler.run_in(0, "boom", {"device": "grp_1"})
            await asyncio.sleep(0.01)

        asyncio.run(scenario())
        assert "scheduled callback boom failed" in caplog.text

    def test_requires_running_loop_without_explicit_loop(self):
        scheduler = AsyncioScheduler()
        scheduler.register("record", lambda payload: None)
        with pytest.raises(RuntimeError):
            scheduler.run_in(1, "record", {})
