"""Current and adjacent-window codes, refreshed by a 1 Hz ticker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from otpclock.clock import SyncContext
from otpclock.config import settings
from otpclock.models import WindowCodes
from otpclock.totp import PERIOD, TotpEngine

logger = logging.getLogger(__name__)

PERIOD_MS = PERIOD * 1000


class WindowCodeProducer:
    """Evaluates the current code and, on request, the ±1 period codes.

    Nothing is cached between calls: every call reads the synchronized
    clock once and evaluates each window from that same instant.
    """

    def __init__(self, context: SyncContext, engine: TotpEngine | None = None) -> None:
        self.context = context
        self.engine = engine or TotpEngine(context)

    def produce(self, secret: str, adjacent: bool = False, timestamp_ms: int | None = None) -> WindowCodes:
        now = self.context.synced_time() if timestamp_ms is None else int(timestamp_ms)
        current = self.engine.generate(secret, now)
        previous = next_ = None
        if adjacent:
            previous = self.engine.generate(secret, now - PERIOD_MS)
            next_ = self.engine.generate(secret, now + PERIOD_MS)
        return WindowCodes(
            current=current,
            previous=previous,
            next=next_,
            timestamp_ms=now,
            synchronized=self.context.synchronized,
        )


class CodeTicker:
    """Calls a synchronous callback every interval until stopped.

    The callback runs inline on the event loop, so ticks never overlap.
    """

    def __init__(self, callback: Callable[[], None], interval_s: float | None = None) -> None:
        self.callback = callback
        self.interval_s = settings.tick_interval_s if interval_s is None else interval_s
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="otpclock-ticker")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                self.callback()
            except Exception:
                logger.error("Tick callback failed", exc_info=True)
            await asyncio.sleep(self.interval_s)
