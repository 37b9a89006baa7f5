"""Lamp controller: owns the local view of the lamp and keeps it in sync."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from nightlamp.lib.alarms import AlarmStore
from nightlamp.lib.channel import Debouncer, SettingGroup, TransientLabel
from nightlamp.lib.clock import ClockModel, local_sync_payload, monotonic_ms
from nightlamp.lib.lamp import LampError, NightLamp
from nightlamp.lib.models import (
    AlarmConfig,
    ColorMode,
    Config,
    DeviceStatus,
    PartyConfig,
    PartyEffect,
)
from nightlamp.lib.parsers import (
    MAX_LEAD_SECONDS,
    MAX_TIMEOUT_MINUTES,
    MIN_TIMEOUT_MINUTES,
    clamp,
    normalize_color,
    to_percent,
    to_raw,
)
from nightlamp.lib.ramp import RampTestSimulator

DEFAULT_LABEL_HOLD = 1.2
SYNC_LABEL_HOLD = 1.5
log = logging.getLogger("nightlamp")


class LampController:
    """Optimistic local state for every lamp setting.

    Edits show up immediately and are pushed after a quiet period; the
    status poll then overwrites everything with what the lamp reports.
    """

    def __init__(
        self,
        lamp: NightLamp,
        config: Config,
        *,
        now_ms: Callable[[], float] = monotonic_ms,
        clock: ClockModel | None = None,
    ) -> None:
        self.lamp = lamp
        self.config = config
        self.clock = clock or ClockModel(now_ms=now_ms)
        self.alarms = AlarmStore(lamp)
        self.ramp = RampTestSimulator(
            lamp, tick=config.ramp_tick, settle=config.ramp_settle, now_ms=now_ms
        )
        self.debouncer = Debouncer()
        self.default_saved = False

        self.rgb = SettingGroup(
            "rgb",
            {"color": "#FFFFFF", "brightness": 100},
            self._push_rgb,
            self.debouncer,
            config.push_debounce,
            on_pushed=self.refresh_status,
        )
        self.hp = SettingGroup(
            "hp",
            {"level": 60},
            self._push_hp,
            self.debouncer,
            config.push_debounce,
            on_pushed=self.refresh_status,
        )
        party = PartyConfig()
        self.party = SettingGroup(
            "party",
            {
                "enabled": party.enabled,
                "music": party.music,
                "effect": party.effect,
                "speed": party.speed,
                "brightness": party.brightness,
                "mode": party.mode,
                "color": party.color,
            },
            self._push_party,
            self.debouncer,
            config.push_debounce,
            on_pushed=self.refresh_status,
        )
        self.alarm_config = SettingGroup(
            "alarmcfg",
            {"lead": 600, "timeout": 10, "led": True, "buzzer": False},
            self._push_alarm_config,
            self.debouncer,
            config.alarm_config_debounce,
            on_pushed=self.load_alarm_config,
        )
        self.status_groups = (self.rgb, self.hp, self.party)

        self.save_button = TransientLabel("Set as default", DEFAULT_LABEL_HOLD)
        self.apply_button = TransientLabel("Set back to default", DEFAULT_LABEL_HOLD)
        self.apply_button.enabled = False
        self.sync_button = TransientLabel("Sync Time", SYNC_LABEL_HOLD)

        self._timers: list[asyncio.Task[None]] = []

    # Lifecycle

    async def init(self) -> None:
        await self.refresh_status()
        await self.load_alarm_config()
        await self.refresh_alarms()
        self._timers = [
            self._start_timer("clock-tick", self.config.clock_interval, self._tick_clock),
            self._start_timer("status-poll", self.config.poll_interval, self.refresh_status),
            self._start_timer(
                "alarm-countdown", self.config.alarm_refresh_interval, self.refresh_alarms
            ),
        ]
        log.debug("Controller started for %s", self.lamp.base_url)

    async def dispose(self) -> None:
        timers, self._timers = self._timers, []
        for task in timers:
            task.cancel()
        for task in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.debouncer.aclose()
        self.ramp.dispose()
        for label in (self.save_button, self.apply_button, self.sync_button):
            label.cancel()

    def _start_timer(
        self, name: str, interval: float, action: Callable[[], Awaitable[Any]]
    ) -> asyncio.Task[None]:
        async def run() -> None:
            while True:
                await asyncio.sleep(interval)
                await action()

        return asyncio.create_task(run(), name=name)

    async def _tick_clock(self) -> None:
        self.clock.tick()

    # Reconciliation

    async def refresh_status(self) -> DeviceStatus | None:
        for group in self.status_groups:
            await group.wait_in_flight()
        marks = {group.name: group.edit_marks() for group in self.status_groups}
        fallback = PartyConfig(**self.party.values())
        try:
            status = await self.lamp.get_status(party_fallback=fallback)
        except LampError as exc:
            log.debug("Status refresh failed: %s", exc)
            return None
        self.apply_status(status, marks)
        return status

    def apply_status(self, status: DeviceStatus, marks: dict[str, dict[str, int]]) -> None:
        if status.epoch is not None:
            self.clock.set_sample(status.epoch)
        self.default_saved = status.default_saved
        self.apply_button.enabled = status.default_saved
        if status.rgb is not None:
            raw = status.rgb.brightness_raw
            self.rgb.reconcile(
                {"color": status.rgb.color, "brightness": None if raw is None else to_percent(raw)},
                marks["rgb"],
            )
        if status.hp_raw is not None:
            self.hp.reconcile({"level": to_percent(status.hp_raw)}, marks["hp"])
        if status.party is not None:
            party = status.party
            self.party.reconcile(
                {
                    "enabled": party.enabled,
                    "music": party.music,
                    "effect": party.effect,
                    "speed": party.speed,
                    "brightness": party.brightness,
                    "mode": party.mode,
                    "color": party.color,
                },
                marks["party"],
            )

    async def load_alarm_config(self) -> AlarmConfig | None:
        await self.alarm_config.wait_in_flight()
        marks = self.alarm_config.edit_marks()
        try:
            cfg = await self.lamp.get_alarm_config()
        except LampError as exc:
            log.debug("Alarm config fetch failed: %s", exc)
            return None
        timeout = None if cfg.timeout_seconds is None else int(round(cfg.timeout_seconds / 60))
        self.alarm_config.reconcile(
            {
                "lead": cfg.lead_seconds,
                "timeout": timeout,
                "led": cfg.use_led,
                "buzzer": cfg.use_buzzer,
            },
            marks,
        )
        return cfg

    def now(self) -> datetime:
        return self.clock.now() or datetime.now().astimezone()

    async def refresh_alarms(self) -> None:
        await self.alarms.list_alarms()
        self.alarms.recompute(self.now())

    # Pushes

    async def _push_rgb(self, values: dict[str, Any]) -> None:
        await self.lamp.set_rgb(values["color"], to_raw(values["brightness"]))

    async def _push_hp(self, values: dict[str, Any]) -> None:
        await self.lamp.set_hp(to_raw(values["level"]))

    async def _push_party(self, values: dict[str, Any]) -> None:
        await self.lamp.set_party(PartyConfig(**values))

    async def _push_alarm_config(self, values: dict[str, Any]) -> None:
        await self.lamp.set_alarm_config(
            values["lead"], values["timeout"], values["led"], values["buzzer"]
        )

    # Edits

    def set_color(self, color: str) -> None:
        self.rgb.edit(color=normalize_color(color))

    def set_brightness(self, percent: int) -> None:
        self.rgb.edit(brightness=clamp(percent, 0, 100))

    def set_white(self, percent: int) -> None:
        self.hp.edit(level=clamp(percent, 0, 100))

    def set_party(self, **changes: Any) -> None:
        cleaned: dict[str, Any] = {}
        for key, value in changes.items():
            if key in ("speed", "brightness"):
                value = clamp(int(value), 0, 100)
            elif key == "effect":
                value = PartyEffect(value)
            elif key == "mode":
                value = ColorMode(value)
            elif key == "color":
                value = normalize_color(value)
            elif key in ("enabled", "music"):
                value = bool(value)
            cleaned[key] = value
        self.party.edit(**cleaned)

    def set_alarm_config(self, **changes: Any) -> None:
        cleaned = dict(changes)
        if "lead" in cleaned:
            cleaned["lead"] = clamp(int(cleaned["lead"]), 0, MAX_LEAD_SECONDS)
        if "timeout" in cleaned:
            cleaned["timeout"] = clamp(
                int(cleaned["timeout"]), MIN_TIMEOUT_MINUTES, MAX_TIMEOUT_MINUTES
            )
        self.alarm_config.edit(**cleaned)

    # Actions

    async def save_default(self) -> None:
        try:
            await self.lamp.save_default()
        except LampError as exc:
            log.debug("Saving default failed: %s", exc)
            return
        self.save_button.flash("Saved!")
        await self.refresh_status()

    async def apply_default(self) -> None:
        try:
            await self.lamp.apply_default()
        except LampError as exc:
            log.debug("Applying default failed: %s", exc)
            return
        self.apply_button.flash("Restored!")
        await self.refresh_status()

    async def sync_time(self) -> None:
        epoch, tz_offset = local_sync_payload()
        try:
            await self.lamp.set_time(epoch, tz_offset)
        except LampError as exc:
            log.debug("Time sync failed: %s", exc)
            await self.refresh_status()
            return
        await self.refresh_status()
        self.sync_button.flash("Synced!")

    async def reset_alarm(self) -> None:
        try:
            await self.lamp.reset_alarm()
        except LampError as exc:
            log.debug("Alarm reset failed: %s", exc)

    async def add_alarm(self, hour: int, minute: int, days: frozenset[int] = frozenset()) -> None:
        await self.alarms.add_alarm(hour, minute, days, now=self.now())

    async def toggle_alarm(self, alarm_id: str, enabled: bool) -> None:
        await self.alarms.toggle_alarm(alarm_id, enabled, now=self.now())

    async def delete_alarm(self, alarm_id: str) -> None:
        await self.alarms.delete_alarm(alarm_id, now=self.now())

    async def start_ramp_test(self) -> bool:
        return await self.ramp.start(int(self.alarm_config["lead"]))

    async def stop_ramp_test(self) -> None:
        await self.ramp.stop(manual=True)
