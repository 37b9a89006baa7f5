"""Client-side rehearsal of the lamp's wake-up ramp."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from nightlamp.lib.clock import monotonic_ms
from nightlamp.lib.lamp import LampError, NightLamp
from nightlamp.lib.models import RampTestSession

log = logging.getLogger("nightlamp")


class RampTestSimulator:
    """Progress bar that tracks a ramp test running on the lamp.

    The animation is purely local: once the start request has gone out the
    bar fills from elapsed wall time, not from lamp feedback.
    """

    def __init__(
        self,
        lamp: NightLamp,
        *,
        tick: float = 0.1,
        settle: float = 0.3,
        now_ms: Callable[[], float] = monotonic_ms,
    ) -> None:
        self.lamp = lamp
        self.tick_interval = tick
        self.settle = settle
        self._now_ms = now_ms
        self.session: RampTestSession | None = None
        self.start_enabled = True
        self.stop_enabled = False
        self.progress_visible = False
        self.fraction = 0.0
        self.auto_stops = 0
        self._ticker: asyncio.Task[None] | None = None
        self._auto_stop: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self.session is not None

    @property
    def width(self) -> str:
        return f"{self.fraction * 100:.1f}%"

    async def start(self, seconds: int) -> bool:
        if seconds <= 0:
            return False

        self.start_enabled = False
        self.stop_enabled = True
        try:
            await self.lamp.start_alarm_test(seconds)
        except LampError as exc:
            log.debug("Ramp test start failed: %s", exc)
            self.start_enabled = True
            self.stop_enabled = False
            self._set_progress_visible(False)
            return False

        self._cancel_tasks()
        self.session = RampTestSession(started_at_ms=self._now_ms(), duration_seconds=seconds)
        self._set_progress_visible(True)
        self._ticker = asyncio.create_task(self._run_ticker(), name="ramp-test-ticker")
        log.debug("Ramp test started duration=%ds", seconds)
        return True

    async def _run_ticker(self) -> None:
        while self.session is not None:
            await asyncio.sleep(self.tick_interval)
            if self.tick() >= 1.0:
                return

    def tick(self) -> float:
        session = self.session
        if session is None:
            return self.fraction
        self.fraction = session.update(self._now_ms())
        if self.fraction >= 1.0 and self._auto_stop is None:
            self._auto_stop = asyncio.create_task(self._finish(), name="ramp-test-auto-stop")
        return self.fraction

    async def _finish(self) -> None:
        await asyncio.sleep(self.settle)
        self.auto_stops += 1
        await self.stop(manual=False)

    async def stop(self, manual: bool = True) -> None:
        self._cancel_tasks()
        self.session = None
        try:
            await self.lamp.stop_alarm_test()
        except LampError as exc:
            log.debug("Ramp test stop failed: %s", exc)
        if manual:
            self._set_progress_visible(False)
        self.start_enabled = True
        self.stop_enabled = False

    def _set_progress_visible(self, visible: bool) -> None:
        self.progress_visible = visible
        self.fraction = 0.0

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in (self._ticker, self._auto_stop):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._ticker = None
        self._auto_stop = None

    def dispose(self) -> None:
        self._cancel_tasks()
        self.session = None
