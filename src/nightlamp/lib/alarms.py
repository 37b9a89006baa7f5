"""Alarm list store and next-alarm resolution."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from nightlamp.lib.lamp import LampError, NightLamp
from nightlamp.lib.models import Alarm, NextAlarm
from nightlamp.lib.parsers import clamp, describe_days

MINUTES_PER_DAY = 24 * 60
NO_ALARM_TIME = "--:--"
NO_ALARM_TEXT = "No upcoming alarms"
log = logging.getLogger("nightlamp")


def sunday_weekday(moment: datetime) -> int:
    """Weekday index with Sunday as 0."""
    return (moment.weekday() + 1) % 7


def resolve_next_alarm(alarms: Iterable[Alarm], now: datetime) -> NextAlarm | None:
    """Find the enabled alarm that fires soonest after `now`.

    Ties keep the alarm that came first in `alarms`.
    """
    today = sunday_weekday(now)
    now_minute = now.hour * 60 + now.minute
    best: NextAlarm | None = None

    for alarm in alarms:
        if not alarm.enabled:
            continue
        candidates = []
        if alarm.matches_day(today) and alarm.minute_of_day > now_minute:
            candidates.append(alarm.minute_of_day - now_minute)
        for offset in range(1, 8):
            if alarm.matches_day((today + offset) % 7):
                candidates.append(alarm.minute_of_day + MINUTES_PER_DAY * offset - now_minute)
                break
        for diff in candidates:
            if best is None or diff < best.minutes:
                best = NextAlarm(alarm=alarm, minutes=diff)

    return best


def describe_alarm(alarm: Alarm) -> str:
    return f"Alarm, every {describe_days(alarm.days)}"


def format_next_alarm(next_alarm: NextAlarm | None) -> tuple[str, str]:
    if next_alarm is None:
        return NO_ALARM_TIME, NO_ALARM_TEXT
    return next_alarm.alarm.time, next_alarm.remaining()


class AlarmStore:
    """Last alarm list fetched from the lamp.

    Every mutation is sent as-is and followed by a full re-fetch; the list is
    never edited locally because ids are assigned by the lamp.
    """

    def __init__(self, lamp: NightLamp) -> None:
        self.lamp = lamp
        self.alarms: list[Alarm] = []
        self.next_alarm: NextAlarm | None = None

    async def list_alarms(self) -> list[Alarm]:
        try:
            result = await self.lamp.list_alarms()
        except LampError as exc:
            log.debug("Alarm list fetch failed: %s", exc)
            return self.alarms
        if result.skipped:
            log.warning("Skipped %d malformed alarm entries", result.skipped)
        self.alarms = result.alarms
        return self.alarms

    def recompute(self, now: datetime | None) -> NextAlarm | None:
        now = now or datetime.now().astimezone()
        self.next_alarm = resolve_next_alarm(self.alarms, now)
        return self.next_alarm

    async def refresh(self, now: datetime | None = None) -> NextAlarm | None:
        await self.list_alarms()
        return self.recompute(now)

    async def add_alarm(
        self,
        hour: int,
        minute: int,
        days: Iterable[int] = (),
        now: datetime | None = None,
    ) -> NextAlarm | None:
        hour = clamp(hour, 0, 23)
        minute = clamp(minute, 0, 59)
        try:
            await self.lamp.add_alarm(hour, minute, frozenset(d for d in days if 0 <= d < 7))
        except LampError as exc:
            log.debug("Adding alarm %02d:%02d failed: %s", hour, minute, exc)
        return await self.refresh(now)

    async def toggle_alarm(
        self, alarm_id: str, enabled: bool, now: datetime | None = None
    ) -> NextAlarm | None:
        try:
            await self.lamp.toggle_alarm(alarm_id, enabled)
        except LampError as exc:
            log.debug("Toggling alarm %s failed: %s", alarm_id, exc)
        return await self.refresh(now)

    async def delete_alarm(self, alarm_id: str, now: datetime | None = None) -> NextAlarm | None:
        try:
            await self.lamp.delete_alarm(alarm_id)
        except LampError as exc:
            log.debug("Deleting alarm %s failed: %s", alarm_id, exc)
        return await self.refresh(now)

    def rows(self) -> list[tuple[Alarm, str]]:
        """Alarms sorted by time of day for display."""
        ordered = sorted(self.alarms, key=lambda a: a.time)
        return [(alarm, describe_alarm(alarm)) for alarm in ordered]
