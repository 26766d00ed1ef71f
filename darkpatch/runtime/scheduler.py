"""
Cancellable scheduled tasks on the asyncio event loop.

    DebouncedTask   - trailing debounce: every trigger() restarts the window,
                      the callback fires once the window passes quietly
    PeriodicTask    - fires the callback every `interval` seconds until cancelled
    CoalescingQueue - accumulates scan scopes between cycles; one drain per cycle

All of them must be started from inside a running event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from darkpatch.observability.logging import get_logger

logger = get_logger(__name__)


class ScheduledTask:
    """Base for something the monitor can cancel."""

    name = "task"

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def active(self) -> bool:
        raise NotImplementedError


class DebouncedTask(ScheduledTask):
    name = "debounce"

    def __init__(self, callback: Callable[[], None], delay: float):
        self.callback = callback
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self.callback()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def active(self) -> bool:
        return self._handle is not None


class PeriodicTask(ScheduledTask):
    name = "periodic"

    def __init__(self, callback: Callable[[], None], interval: float):
        self.callback = callback
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.callback()
            except Exception as e:
                logger.error("Periodic callback failed: %s", e)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()


@dataclass(frozen=True)
class CycleScope:
    """What one scan cycle covers: the whole document or a set of subtree roots."""

    whole_document: bool
    identities: frozenset[str] = frozenset()

    @property
    def key(self) -> str:
        if self.whole_document:
            return "document"
        return "|".join(sorted(self.identities))

    @classmethod
    def document(cls) -> CycleScope:
        return cls(whole_document=True)


class CoalescingQueue:
    """Pending scan scopes; any unscoped request widens the next cycle to the whole document."""

    def __init__(self):
        self._identities: set[str] = set()
        self._whole = False

    def add(self, identity: str | None) -> None:
        if identity is None:
            self._whole = True
        else:
            self._identities.add(identity)

    def __bool__(self) -> bool:
        return self._whole or bool(self._identities)

    def drain(self) -> CycleScope | None:
        if not self:
            return None
        if self._whole:
            scope = CycleScope.document()
        else:
            scope = CycleScope(whole_document=False, identities=frozenset(self._identities))
        self._identities.clear()
        self._whole = False
        return scope
