"""
Unit Tests: Schedulers

Tests:
    - ManualScheduler ordering, repeating handles and lazy cancel
    - Handle lifecycle (PENDING → FIRED / CANCELLED)
    - AsyncioScheduler with short real delays
"""

import asyncio

import pytest

from authgate.scheduling import AsyncioScheduler, HandleState, ManualScheduler


def run(coro):
    return asyncio.run(coro)


class TestManualScheduler:
    """Tests for the fake-clock scheduler."""

    def test_fires_in_time_order(self):
        async def scenario():
            scheduler = ManualScheduler()
            fired = []

            async def mark(label):
                fired.append((label, scheduler.monotonic()))

            scheduler.schedule_once(5.0, lambda: mark("b"))
            scheduler.schedule_once(2.0, lambda: mark("a"))
            count = await scheduler.advance(10.0)

            assert count == 2
            assert fired == [("a", 2.0), ("b", 5.0)]
            assert scheduler.monotonic() == 10.0

        run(scenario())

    def test_not_before_due(self):
        async def scenario():
            scheduler = ManualScheduler()
            fired = []

            async def cb():
                fired.append(scheduler.monotonic())

            handle = scheduler.schedule_once(60.0, cb)
            await scheduler.advance(59.0)
            assert fired == []
            assert handle.active

            await scheduler.advance(1.0)
            assert fired == [60.0]
            assert handle.state is HandleState.FIRED

        run(scenario())

    def test_repeating(self):
        async def scenario():
            scheduler = ManualScheduler()
            ticks = []

            async def cb():
                ticks.append(scheduler.monotonic())

            handle = scheduler.schedule_repeating(15.0, 15.0, cb)
            await scheduler.advance(60.0)
            assert ticks == [15.0, 30.0, 45.0, 60.0]
            assert handle.active

            assert scheduler.cancel(handle) is True
            await scheduler.advance(60.0)
            assert len(ticks) == 4

        run(scenario())

    def test_cancel_is_idempotent(self):
        async def scenario():
            scheduler = ManualScheduler()

            async def cb():
                raise AssertionError("cancelled callback ran")

            handle = scheduler.schedule_once(1.0, cb)
            assert scheduler.cancel(handle) is True
            assert scheduler.cancel(handle) is False
            assert scheduler.cancel(None) is False
            await scheduler.advance(5.0)
            assert handle.state is HandleState.CANCELLED

        run(scenario())

    def test_cancel_after_fire_is_noop(self):
        async def scenario():
            scheduler = ManualScheduler()

            async def cb():
                return None

            handle = scheduler.schedule_once(1.0, cb)
            await scheduler.advance(1.0)
            assert scheduler.cancel(handle) is False
            assert handle.fired

        run(scenario())

    def test_shutdown(self):
        async def scenario():
            scheduler = ManualScheduler()

            async def cb():
                return None

            scheduler.schedule_once(1.0, cb)
            scheduler.schedule_repeating(1.0, 1.0, cb)
            assert scheduler.pending == 2
            assert scheduler.shutdown() == 2
            assert await scheduler.advance(10.0) == 0

        run(scenario())

    def test_rejects_backwards_time(self):
        with pytest.raises(ValueError):
            run(ManualScheduler().advance(-1.0))


class TestAsyncioScheduler:
    """Tests for the task-backed scheduler (real, short delays)."""

    def test_once(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            done = asyncio.Event()

            async def cb():
                done.set()

            handle = scheduler.schedule_once(0.01, cb)
            await asyncio.wait_for(done.wait(), timeout=1.0)
            assert handle.fired
            assert scheduler.cancel(handle) is False

        run(scenario())

    def test_cancel_before_due(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            fired = []

            async def cb():
                fired.append(True)

            handle = scheduler.schedule_once(0.05, cb)
            assert scheduler.cancel(handle) is True
            assert scheduler.cancel(handle) is False
            await asyncio.sleep(0.1)
            assert fired == []

        run(scenario())

    def test_repeating_until_cancelled(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            ticks = []

            async def cb():
                ticks.append(True)

            handle = scheduler.schedule_repeating(0.01, 0.01, cb)
            await asyncio.sleep(0.1)
            scheduler.cancel(handle)
            seen = len(ticks)
            assert seen >= 2
            await asyncio.sleep(0.05)
            assert len(ticks) == seen

        run(scenario())

    def test_cancel_during_callback_does_not_interrupt(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            finished = asyncio.Event()
            handle_box = []

            async def cb():
                scheduler.cancel(handle_box[0])
                await asyncio.sleep(0.01)
                finished.set()

            handle_box.append(scheduler.schedule_repeating(0.01, 0.01, cb))
            await asyncio.wait_for(finished.wait(), timeout=1.0)
            assert handle_box[0].cancelled

        run(scenario())

    def test_callback_error_is_logged_not_raised(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            ticks = []

            async def cb():
                ticks.append(True)
                raise RuntimeError("boom")

            handle = scheduler.schedule_repeating(0.01, 0.01, cb)
            await asyncio.sleep(0.05)
            scheduler.cancel(handle)
            assert len(ticks) >= 2

        run(scenario())

    def test_shutdown(self):
        async def scenario():
            scheduler = AsyncioScheduler()

            async def cb():
                return None

            scheduler.schedule_once(10.0, cb)
            scheduler.schedule_once(10.0, cb)
            await asyncio.sleep(0)
            assert scheduler.shutdown() == 2

        run(scenario())
