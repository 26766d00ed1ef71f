from __future__ import annotations

import asyncio

from darkpatch.contracts.types import BoundingBox
from darkpatch.host.memory import DocumentTree, Element
from darkpatch.monitor.change_monitor import ChangeMonitor
from darkpatch.observability.telemetry import get_counter
from darkpatch.runtime.scheduler import CoalescingQueue, CycleScope, DebouncedTask, PeriodicTask


def _tree(count: int = 3) -> DocumentTree:
    items = [
        Element("li", attributes={"id": f"item-{i}"}, box=BoundingBox(0, 0, 100, 20))
        for i in range(count)
    ]
    return DocumentTree(Element("html", children=[Element("body", children=items)]))


class _Recorder:
    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.scopes: list[CycleScope] = []

    async def __call__(self, scope: CycleScope):
        self.scopes.append(scope)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("cycle blew up")


def test_burst_of_mutations_runs_one_cycle():
    async def scenario():
        tree = _tree()
        recorder = _Recorder()
        monitor = ChangeMonitor(tree, recorder, debounce=0.05, tick=60)
        monitor.start()

        item = tree.resolve('id("item-0")')
        for i in range(50):
            tree.set_style(item, "color", f"rgb({i}, {i}, {i})")
            if i % 10 == 0:
                await asyncio.sleep(0)

        await asyncio.sleep(0.2)
        await monitor.wait_idle()
        await monitor.stop()
        return recorder.scopes

    scopes = asyncio.run(scenario())

    assert len(scopes) == 1
    assert scopes[0] == CycleScope(whole_document=False, identities=frozenset({'id("item-0")'}))


def test_mutations_on_several_nodes_share_a_cycle():
    async def scenario():
        tree = _tree()
        recorder = _Recorder()
        monitor = ChangeMonitor(tree, recorder, debounce=0.05, tick=60)
        monitor.start()
        for i in range(3):
            tree.set_attribute(tree.resolve(f'id("item-{i}")'), "data-x", "1")
        await asyncio.sleep(0.2)
        await monitor.stop()
        return recorder.scopes

    scopes = asyncio.run(scenario())

    assert len(scopes) == 1
    assert scopes[0].identities == {'id("item-0")', 'id("item-1")', 'id("item-2")'}


def test_unscoped_notification_widens_to_document():
    async def scenario():
        tree = _tree()
        recorder = _Recorder()
        monitor = ChangeMonitor(tree, recorder, debounce=0.02, tick=60)
        monitor.start()
        tree.set_style(tree.resolve('id("item-1")'), "opacity", "0.2")
        tree.notify(None)
        await asyncio.sleep(0.15)
        await monitor.stop()
        return recorder.scopes

    scopes = asyncio.run(scenario())

    assert [s.whole_document for s in scopes] == [True]


def test_mutations_during_a_cycle_fold_into_one_follow_up():
    async def scenario():
        tree = _tree()
        recorder = _Recorder(delay=0.2)
        monitor = ChangeMonitor(tree, recorder, debounce=0.01, tick=60)
        monitor.start()

        tree.notify(None)
        await asyncio.sleep(0.05)  # first cycle now in flight
        assert monitor.busy

        for i in range(3):
            tree.set_style(tree.resolve(f'id("item-{i}")'), "color", "red")
            await asyncio.sleep(0.02)

        await monitor.wait_idle()
        await monitor.stop()
        return recorder.scopes

    scopes = asyncio.run(scenario())

    assert len(scopes) == 2
    assert scopes[0].whole_document
    assert len(scopes[1].identities) == 3
    assert get_counter("monitor.coalesced") >= 1


def test_periodic_tick_requests_full_scan():
    async def scenario():
        recorder = _Recorder()
        monitor = ChangeMonitor(_tree(), recorder, debounce=0.01, tick=0.03)
        monitor.start()
        await asyncio.sleep(0.1)
        await monitor.stop()
        return recorder.scopes

    scopes = asyncio.run(scenario())

    assert scopes
    assert all(scope.whole_document for scope in scopes)


def test_failing_cycle_does_not_stop_monitor():
    async def scenario():
        tree = _tree()
        recorder = _Recorder(fail=True)
        monitor = ChangeMonitor(tree, recorder, debounce=0.01, tick=60)
        monitor.start()
        tree.notify(None)
        await asyncio.sleep(0.05)
        tree.notify(None)
        await asyncio.sleep(0.05)
        running = monitor.running
        await monitor.stop()
        return recorder.scopes, running

    scopes, running = asyncio.run(scenario())

    assert len(scopes) == 2
    assert running
    assert get_counter("monitor.cycle_error") == 2


def test_stop_unsubscribes_and_cancels_timers():
    async def scenario():
        tree = _tree()
        recorder = _Recorder()
        monitor = ChangeMonitor(tree, recorder, debounce=0.05, tick=0.05)
        monitor.start()
        tree.notify(None)
        await monitor.stop()
        tree.notify(None)
        await asyncio.sleep(0.15)
        return recorder.scopes, monitor

    scopes, monitor = asyncio.run(scenario())

    assert scopes == []
    assert not monitor.running
    assert not monitor.debouncer.active
    assert not monitor.ticker.active


class TestScheduler:
    def test_debounce_restarts_window(self):
        async def scenario():
            fired: list[float] = []
            loop = asyncio.get_running_loop()
            task = DebouncedTask(lambda: fired.append(loop.time()), 0.05)
            start = loop.time()
            for _ in range(5):
                task.trigger()
                await asyncio.sleep(0.02)
            await asyncio.sleep(0.1)
            return fired, start

        fired, start = asyncio.run(scenario())

        assert len(fired) == 1
        # Last trigger at ~0.08s, window 0.05s
        assert fired[0] - start >= 0.1

    def test_cancelled_debounce_never_fires(self):
        async def scenario():
            fired = []
            task = DebouncedTask(lambda: fired.append(1), 0.02)
            task.trigger()
            task.cancel()
            await asyncio.sleep(0.05)
            return fired, task.active

        assert asyncio.run(scenario()) == ([], False)

    def test_periodic_task_survives_callback_errors(self):
        async def scenario():
            calls = []

            def callback():
                calls.append(1)
                raise ValueError("boom")

            task = PeriodicTask(callback, 0.01)
            task.start()
            await asyncio.sleep(0.06)
            task.cancel()
            return calls

        assert len(asyncio.run(scenario())) >= 2

    def test_coalescing_queue(self):
        queue = CoalescingQueue()
        assert queue.drain() is None

        queue.add("a")
        queue.add("b")
        queue.add("a")
        assert queue.drain() == CycleScope(whole_document=False, identities=frozenset({"a", "b"}))
        assert not queue

        queue.add("a")
        queue.add(None)
        scope = queue.drain()
        assert scope.whole_document
        assert scope.key == "document"
