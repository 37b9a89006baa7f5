"""Tests for the wake-ramp test simulator."""

from __future__ import annotations

import asyncio
import unittest
from typing import cast
from unittest.mock import AsyncMock

from nightlamp.lib.lamp import LampError, NightLamp
from nightlamp.lib.ramp import RampTestSimulator


class FakeMonotonic:
    def __init__(self) -> None:
        self.ms = 0.0

    def __call__(self) -> float:
        return self.ms


class TestRampTestSimulator(unittest.IsolatedAsyncioTestCase):
    def make_simulator(
        self, *, tick: float = 3600.0, settle: float = 0.0
    ) -> tuple[RampTestSimulator, AsyncMock, FakeMonotonic]:
        lamp = AsyncMock(spec=NightLamp)
        now = FakeMonotonic()
        simulator = RampTestSimulator(
            cast(NightLamp, lamp), tick=tick, settle=settle, now_ms=now
        )

        async def dispose() -> None:
            simulator.dispose()

        self.addAsyncCleanup(dispose)
        return simulator, lamp, now

    async def test_non_positive_duration_is_a_no_op(self):
        simulator, lamp, _ = self.make_simulator()
        for seconds in (0, -5):
            self.assertFalse(await simulator.start(seconds))
        lamp.start_alarm_test.assert_not_awaited()
        self.assertTrue(simulator.start_enabled)
        self.assertFalse(simulator.stop_enabled)
        self.assertFalse(simulator.progress_visible)
        self.assertFalse(simulator.running)

    async def test_start_requests_duration_and_shows_progress(self):
        simulator, lamp, _ = self.make_simulator()
        self.assertTrue(await simulator.start(10))
        lamp.start_alarm_test.assert_awaited_once_with(10)
        self.assertFalse(simulator.start_enabled)
        self.assertTrue(simulator.stop_enabled)
        self.assertTrue(simulator.progress_visible)
        self.assertEqual(simulator.width, "0.0%")

    async def test_progress_is_monotonic_and_auto_stops_once(self):
        simulator, lamp, now = self.make_simulator()
        await simulator.start(10)

        fractions = []
        for ms in range(0, 12001, 500):
            now.ms = ms
            fractions.append(simulator.tick())

        self.assertEqual(fractions, sorted(fractions))
        self.assertLess(fractions[19], 1.0)
        self.assertEqual(fractions[20], 1.0)
        self.assertEqual(fractions[-1], 1.0)

        await asyncio.sleep(0.01)

        self.assertEqual(simulator.auto_stops, 1)
        lamp.stop_alarm_test.assert_awaited_once()
        self.assertFalse(simulator.running)
        # Automatic stop leaves the full bar on screen.
        self.assertTrue(simulator.progress_visible)
        self.assertEqual(simulator.width, "100.0%")
        self.assertTrue(simulator.start_enabled)
        self.assertFalse(simulator.stop_enabled)

    async def test_ticker_drives_progress(self):
        simulator, lamp, now = self.make_simulator(tick=0.001)
        await simulator.start(2)
        now.ms = 1000
        await asyncio.sleep(0.02)
        self.assertEqual(simulator.fraction, 0.5)

        now.ms = 2500
        await asyncio.sleep(0.05)

        self.assertEqual(simulator.auto_stops, 1)
        lamp.stop_alarm_test.assert_awaited_once()

    async def test_manual_stop_hides_progress(self):
        simulator, lamp, now = self.make_simulator()
        await simulator.start(10)
        now.ms = 5000
        self.assertEqual(simulator.tick(), 0.5)

        await simulator.stop()

        lamp.stop_alarm_test.assert_awaited_once()
        self.assertFalse(simulator.progress_visible)
        self.assertEqual(simulator.fraction, 0.0)
        self.assertTrue(simulator.start_enabled)
        self.assertFalse(simulator.stop_enabled)
        self.assertEqual(simulator.auto_stops, 0)

    async def test_manual_stop_during_settle_cancels_auto_stop(self):
        simulator, lamp, now = self.make_simulator(settle=10.0)
        await simulator.start(1)
        now.ms = 1000
        simulator.tick()

        await simulator.stop(manual=True)
        await asyncio.sleep(0.01)

        self.assertEqual(simulator.auto_stops, 0)
        lamp.stop_alarm_test.assert_awaited_once()

    async def test_stop_without_test_still_notifies_lamp(self):
        simulator, lamp, _ = self.make_simulator()
        await simulator.stop()
        await simulator.stop()
        self.assertEqual(lamp.stop_alarm_test.await_count, 2)
        self.assertTrue(simulator.start_enabled)

    async def test_stop_failure_still_resets_controls(self):
        simulator, lamp, _ = self.make_simulator()
        await simulator.start(10)
        lamp.stop_alarm_test.side_effect = LampError("offline")
        await simulator.stop()
        self.assertTrue(simulator.start_enabled)
        self.assertFalse(simulator.running)

    async def test_start_failure_reverts_controls(self):
        simulator, lamp, _ = self.make_simulator()
        lamp.start_alarm_test.side_effect = LampError("offline")
        self.assertFalse(await simulator.start(10))
        self.assertTrue(simulator.start_enabled)
        self.assertFalse(simulator.stop_enabled)
        self.assertFalse(simulator.progress_visible)
        self.assertFalse(simulator.running)


if __name__ == "__main__":
    unittest.main()
