"""Local display clock driven by the lamp's own epoch."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, tzinfo

from nightlamp.lib.models import DeviceClockSample

CLOCK_SOURCE = "Source: internal"
log = logging.getLogger("nightlamp")


def monotonic_ms() -> float:
    return time.monotonic() * 1000


def local_sync_payload(now: float | None = None) -> tuple[int, int]:
    """Return (epoch, tz offset minutes) with the offset positive west of UTC."""
    now = time.time() if now is None else now
    offset = datetime.fromtimestamp(now).astimezone().utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    return int(now), -offset_minutes


class ClockModel:
    """Ticking wall clock derived from the most recent device sample.

    Only whole elapsed seconds are ever added to the displayed epoch, and the
    local reference advances by the same amount, so a late tick catches up
    without the seconds counter ever running backwards.
    """

    def __init__(
        self,
        now_ms: Callable[[], float] = monotonic_ms,
        tz: tzinfo | None = None,
    ) -> None:
        self._now_ms = now_ms
        self._tz = tz
        self.sample: DeviceClockSample | None = None
        self._epoch: int | None = None
        self._last_ms = 0.0

    @property
    def epoch(self) -> int | None:
        return self._epoch

    def set_sample(self, epoch_seconds: int) -> None:
        self.sample = DeviceClockSample(epoch_seconds=epoch_seconds, sampled_at_ms=self._now_ms())
        self._epoch = epoch_seconds
        self._last_ms = self.sample.sampled_at_ms
        log.debug("Clock sample epoch=%d", epoch_seconds)

    def tick(self) -> bool:
        """Advance by whole local seconds; returns True when the display changed."""
        if self._epoch is None:
            return False
        delta = int((self._now_ms() - self._last_ms) // 1000)
        if delta <= 0:
            return False
        self._epoch += delta
        self._last_ms += delta * 1000
        return True

    def now(self) -> datetime | None:
        if self._epoch is None:
            return None
        return datetime.fromtimestamp(self._epoch, tz=self._tz).astimezone(self._tz)

    def render(self) -> tuple[str, str, str] | None:
        current = self.now()
        if current is None:
            return None
        time_str = current.strftime("%H:%M:%S")
        date_str = f"{current:%a}, {current:%b} {current.day}, {current.year}"
        return time_str, date_str, CLOCK_SOURCE
