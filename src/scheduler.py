"""Deferred callbacks on top of the host timer."""

import asyncio
import traceback
from typing import Callable, Set

from constants import TICK_MS
from interfaces import IScheduler


def ticks_to_ms(ticks: int) -> int:
    return max(1, int(ticks)) * TICK_MS


class AsyncioScheduler(IScheduler):
    """Runs callbacks on an event loop after a delay.

    ``schedule`` may be called from any thread.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, logger=None):
        self.loop = loop
        self.logger = logger
        self._handles: Set[asyncio.TimerHandle] = set()

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> None:
        self.loop.call_soon_threadsafe(self._arm, max(0, delay_ms) / 1000, callback)

    def _arm(self, delay: float, callback: Callable[[], None]) -> None:
        handle = None

        def run():
            self._handles.discard(handle)
            try:
                callback()
            except Exception:
                if self.logger:
                    self.logger.log_error(f"scheduled task : {traceback.format_exc()}")

        handle = self.loop.call_later(delay, run)
        self._handles.add(handle)

    def pending(self) -> int:
        return len(self._handles)

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
