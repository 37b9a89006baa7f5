"""Tests for next-alarm resolution and the alarm store."""

from __future__ import annotations

import random
import unittest
from datetime import datetime
from typing import cast
from unittest.mock import AsyncMock

from nightlamp.lib.alarms import (
    AlarmStore,
    describe_alarm,
    format_next_alarm,
    resolve_next_alarm,
    sunday_weekday,
)
from nightlamp.lib.lamp import LampError, NightLamp
from nightlamp.lib.models import Alarm, AlarmListResult, NextAlarm

# 2026-10-19 is a Monday.
MONDAY = datetime(2026, 10, 19)


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    return MONDAY.replace(day=MONDAY.day + day_offset, hour=hour, minute=minute)


def alarm(alarm_id: str, time: str, days: set[int] | None = None, enabled: bool = True) -> Alarm:
    hour, minute = (int(part) for part in time.split(":"))
    return Alarm(
        alarm_id=alarm_id,
        hour=hour,
        minute=minute,
        days=frozenset(days or ()),
        enabled=enabled,
    )


class TestResolveNextAlarm(unittest.TestCase):
    def test_weekday_index_starts_sunday(self):
        self.assertEqual(sunday_weekday(MONDAY), 1)
        self.assertEqual(sunday_weekday(at(6, 0)), 0)
        self.assertEqual(sunday_weekday(at(5, 0)), 6)

    def test_every_day_alarm_already_passed_fires_tomorrow(self):
        result = resolve_next_alarm([alarm("a", "08:00")], at(0, 9))
        assert result is not None
        self.assertEqual(result.alarm.alarm_id, "a")
        self.assertEqual(result.minutes, 23 * 60)

    def test_same_day_alarm_later_today(self):
        result = resolve_next_alarm([alarm("a", "08:00", {1})], at(0, 7))
        assert result is not None
        self.assertEqual(result.minutes, 60)

    def test_alarm_at_current_minute_is_not_today(self):
        result = resolve_next_alarm([alarm("a", "09:00")], at(0, 9))
        assert result is not None
        self.assertEqual(result.minutes, 1440)

    def test_single_day_alarm_wraps_a_full_week(self):
        result = resolve_next_alarm([alarm("a", "08:00", {1})], at(0, 9))
        assert result is not None
        self.assertEqual(result.minutes, 480 + 7 * 1440 - 540)

    def test_saturday_to_sunday_wraparound(self):
        result = resolve_next_alarm([alarm("a", "06:00", {0})], at(5, 23))
        assert result is not None
        self.assertEqual(result.minutes, 360 + 1440 - 23 * 60)

    def test_thursday_alarm_does_not_fire_on_tuesday(self):
        thursday_only = alarm("a", "08:00", {4})
        result = resolve_next_alarm([thursday_only], at(1, 7))
        assert result is not None
        self.assertEqual(result.minutes, 480 + 2 * 1440 - 420)

    def test_disabled_alarms_are_skipped(self):
        alarms = [alarm("a", "09:30", enabled=False), alarm("b", "10:00")]
        result = resolve_next_alarm(alarms, at(0, 9))
        assert result is not None
        self.assertEqual(result.alarm.alarm_id, "b")
        self.assertEqual(result.minutes, 60)

    def test_earliest_wins(self):
        alarms = [alarm("late", "22:00"), alarm("soon", "09:15"), alarm("tomorrow", "06:00", {2})]
        result = resolve_next_alarm(alarms, at(0, 9))
        assert result is not None
        self.assertEqual(result.alarm.alarm_id, "soon")

    def test_tie_goes_to_first_in_list_order(self):
        alarms = [alarm("first", "10:00", {1}), alarm("second", "10:00")]
        result = resolve_next_alarm(alarms, at(0, 9))
        assert result is not None
        self.assertEqual(result.alarm.alarm_id, "first")

        result = resolve_next_alarm(list(reversed(alarms)), at(0, 9))
        assert result is not None
        self.assertEqual(result.alarm.alarm_id, "second")

    def test_no_alarms(self):
        self.assertIsNone(resolve_next_alarm([], MONDAY))
        self.assertIsNone(resolve_next_alarm([alarm("a", "08:00", enabled=False)], MONDAY))

    def test_none_only_without_enabled_alarms(self):
        rng = random.Random(1234)
        for _ in range(300):
            alarms = [
                alarm(
                    str(index),
                    f"{rng.randrange(24):02d}:{rng.randrange(60):02d}",
                    set(rng.sample(range(7), rng.randrange(8))),
                    enabled=rng.random() < 0.3,
                )
                for index in range(rng.randrange(4))
            ]
            now = at(rng.randrange(7), rng.randrange(24), rng.randrange(60))
            result = resolve_next_alarm(alarms, now)
            has_enabled = any(a.enabled for a in alarms)
            self.assertEqual(result is not None, has_enabled)
            if result is not None:
                self.assertTrue(0 < result.minutes <= 7 * 1440)


class TestFormatting(unittest.TestCase):
    def test_placeholder(self):
        self.assertEqual(format_next_alarm(None), ("--:--", "No upcoming alarms"))

    def test_next_alarm(self):
        next_alarm = NextAlarm(alarm=alarm("a", "06:05"), minutes=75)
        self.assertEqual(format_next_alarm(next_alarm), ("06:05", "In 1h 15m"))

    def test_describe(self):
        self.assertEqual(describe_alarm(alarm("a", "06:05")), "Alarm, every day")
        self.assertEqual(describe_alarm(alarm("a", "06:05", {2, 4})), "Alarm, every T,T")


class TestAlarmStore(unittest.IsolatedAsyncioTestCase):
    def make_store(self, alarms: list[Alarm]) -> tuple[AlarmStore, AsyncMock]:
        lamp = AsyncMock(spec=NightLamp)
        lamp.list_alarms.return_value = AlarmListResult(alarms=alarms)
        return AlarmStore(cast(NightLamp, lamp)), lamp

    async def test_refresh_fetches_and_resolves(self):
        store, lamp = self.make_store([alarm("a", "10:00")])
        result = await store.refresh(at(0, 9))
        lamp.list_alarms.assert_awaited_once()
        assert result is not None
        self.assertEqual(result.minutes, 60)
        self.assertIs(store.next_alarm, result)

    async def test_failed_fetch_keeps_last_list(self):
        store, lamp = self.make_store([alarm("a", "10:00")])
        await store.refresh(at(0, 9))
        lamp.list_alarms.side_effect = LampError("offline")

        alarms = await store.list_alarms()

        self.assertEqual([a.alarm_id for a in alarms], ["a"])

    async def test_add_clamps_and_refetches(self):
        store, lamp = self.make_store([])
        await store.add_alarm(25, 75, {1, 9}, now=MONDAY)
        lamp.add_alarm.assert_awaited_once_with(23, 59, frozenset({1}))
        lamp.list_alarms.assert_awaited_once()

    async def test_mutations_refetch_even_when_request_fails(self):
        store, lamp = self.make_store([alarm("a", "10:00")])
        lamp.toggle_alarm.side_effect = LampError("offline")

        await store.toggle_alarm("a", False, now=at(0, 9))
        await store.delete_alarm("a", now=at(0, 9))

        lamp.toggle_alarm.assert_awaited_once_with("a", False)
        lamp.delete_alarm.assert_awaited_once_with("a")
        self.assertEqual(lamp.list_alarms.await_count, 2)

    async def test_rows_sorted_by_time_but_resolution_uses_list_order(self):
        store, _ = self.make_store([alarm("b", "10:00"), alarm("a", "07:00", {2})])
        await store.refresh(at(0, 9))
        self.assertEqual([row[0].alarm_id for row in store.rows()], ["a", "b"])


if __name__ == "__main__":
    unittest.main()
