"""
Change Monitor

Turns the host's mutation feed into scan cycles:

- every notification adds its subtree (or "whole document" when unscoped) to a
  CoalescingQueue and restarts the trailing debounce window
- when the window passes quietly, one cycle runs over everything queued
- a periodic tick queues the whole document regardless of mutations, to catch
  layout-driven re-renders the feed misses
- cycles never overlap; requests arriving mid-cycle are folded into a single
  follow-up cycle

A failing cycle is logged and counted; it never stops the monitor.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from darkpatch.config import MONITOR_DEBOUNCE_SECONDS, MONITOR_TICK_SECONDS
from darkpatch.host.tree import HostTree, Node
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter
from darkpatch.runtime.scheduler import CoalescingQueue, CycleScope, DebouncedTask, PeriodicTask

logger = get_logger(__name__)

CycleRunner = Callable[[CycleScope], Awaitable[object]]


class ChangeMonitor:
    def __init__(
        self,
        tree: HostTree,
        run_cycle: CycleRunner,
        debounce: float = MONITOR_DEBOUNCE_SECONDS,
        tick: float = MONITOR_TICK_SECONDS,
    ):
        self.tree = tree
        self.run_cycle = run_cycle
        self.queue = CoalescingQueue()
        self.debouncer = DebouncedTask(self._request_cycle, debounce)
        self.ticker = PeriodicTask(self._on_tick, tick)
        self.cycles_run = 0
        self._requested = False
        self._runner: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    @property
    def busy(self) -> bool:
        return self._runner is not None and not self._runner.done()

    def start(self) -> None:
        """Subscribe and start the periodic tick. Must be called inside the event loop."""
        if self.running:
            return
        self._unsubscribe = self.tree.subscribe(self._on_mutation)
        self.ticker.start()
        logger.info(
            "Change monitor started (debounce=%.3fs, tick=%.1fs)",
            self.debouncer.delay,
            self.ticker.interval,
        )

    async def stop(self) -> None:
        """Unsubscribe, cancel timers and wait for an in-flight cycle to finish."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.debouncer.cancel()
        self.ticker.cancel()
        self.queue.drain()
        self._requested = False
        if self._runner is not None:
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
        logger.info("Change monitor stopped after %d cycles", self.cycles_run)

    def _on_mutation(self, node: Node | None) -> None:
        identity = self.tree.identity(node) if node is not None else None
        self.queue.add(identity)
        counter("monitor.mutations")
        self.debouncer.trigger()

    def _on_tick(self) -> None:
        self.queue.add(None)
        counter("monitor.ticks")
        self._request_cycle()

    def request_full_scan(self) -> None:
        """Queue a whole-document cycle without waiting for the debounce window."""
        self.queue.add(None)
        self._request_cycle()

    def _request_cycle(self) -> None:
        self._requested = True
        if self.busy:
            counter("monitor.coalesced")
            return
        self._runner = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._requested:
            self._requested = False
            scope = self.queue.drain()
            if scope is None:
                continue
            self.cycles_run += 1
            try:
                await self.run_cycle(scope)
            except Exception as e:
                counter("monitor.cycle_error")
                logger.error("Scan cycle failed (scope=%s): %s", scope.key, e, exc_info=True)

    async def wait_idle(self) -> None:
        """Wait for the current cycle and any coalesced follow-up."""
        while self.busy:
            await asyncio.gather(self._runner, return_exceptions=True)  # type: ignore[arg-type]
