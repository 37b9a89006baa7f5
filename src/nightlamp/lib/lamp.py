"""Night lamp HTTP control primitives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from nightlamp.lib.models import (
    Alarm,
    AlarmConfig,
    AlarmListResult,
    Config,
    DeviceStatus,
    PartyConfig,
)
from nightlamp.lib.parsers import (
    build_alarm_config_params,
    build_party_params,
    encode_days,
    hex_to_rgb,
    parse_alarm_config,
    parse_alarm_list,
    parse_status,
)

NO_STORE = {"Cache-Control": "no-store"}

log = logging.getLogger("nightlamp")


class LampError(RuntimeError):
    """Raised when the lamp cannot be reached or returns garbage."""


class LampResponseError(LampError):
    """Raised when the lamp answers with an HTTP error status."""

    def __init__(self, path: str, status_code: int) -> None:
        super().__init__(f"Lamp returned HTTP {status_code} for {path}")
        self.path = path
        self.status_code = status_code


def _flag(value: bool) -> str:
    return "1" if value else "0"


@dataclass
class NightLamp:
    client: httpx.AsyncClient
    base_url: str

    @classmethod
    def connect(
        cls, config: Config, transport: httpx.AsyncBaseTransport | None = None
    ) -> NightLamp:
        base_url = config.base_url.rstrip("/")
        log.debug("Using lamp at %s timeout=%.1fs", base_url, config.timeout)
        client = httpx.AsyncClient(
            base_url=base_url,
            timeout=config.timeout,
            transport=transport,
            trust_env=False,
        )
        return cls(client=client, base_url=base_url)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()

    async def request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        no_store: bool = False,
    ) -> httpx.Response:
        log.debug("GET %s params=%s", path, params or {})
        try:
            response = await self.client.get(
                path, params=params, headers=NO_STORE if no_store else None
            )
        except httpx.HTTPError as exc:
            raise LampError(f"Failed to contact lamp at {self.base_url}{path}: {exc}") from exc
        log.debug("GET %s -> %d", path, response.status_code)
        if response.status_code >= 400:
            raise LampResponseError(path, response.status_code)
        return response

    async def request_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        no_store: bool = False,
    ) -> Any:
        response = await self.request(path, params, no_store=no_store)
        try:
            return response.json()
        except ValueError as exc:
            raise LampError(f"Lamp returned invalid JSON for {path}") from exc

    async def get_status(self, party_fallback: PartyConfig | None = None) -> DeviceStatus:
        data = await self.request_json("/status", no_store=True)
        try:
            return parse_status(data, party_fallback)
        except ValueError as exc:
            raise LampError(str(exc)) from exc

    async def set_time(self, epoch: int, tz_offset_minutes: int) -> None:
        await self.request("/settime", {"epoch": epoch, "tz": tz_offset_minutes})

    async def set_rgb(self, color: str, brightness_raw: int) -> None:
        r, g, b = hex_to_rgb(color)
        await self.request("/setrgb", {"r": r, "g": g, "b": b, "bri": brightness_raw})

    async def set_hp(self, value_raw: int) -> None:
        await self.request("/sethp", {"val": value_raw})

    async def save_default(self) -> None:
        await self.request("/default/save", no_store=True)

    async def apply_default(self) -> None:
        await self.request("/default/apply", no_store=True)

    async def list_alarms(self) -> AlarmListResult:
        data = await self.request_json("/alarms/list")
        try:
            return parse_alarm_list(data)
        except ValueError as exc:
            raise LampError(str(exc)) from exc

    async def add_alarm(self, hour: int, minute: int, days: frozenset[int]) -> None:
        await self.request(
            "/alarms/add",
            {"time": f"{hour:02d}:{minute:02d}", "days": encode_days(days), "enabled": 1},
        )

    async def toggle_alarm(self, alarm_id: str, enabled: bool) -> None:
        await self.request("/alarms/toggle", {"id": alarm_id, "enabled": _flag(enabled)})

    async def delete_alarm(self, alarm_id: str) -> None:
        await self.request("/alarms/delete", {"id": alarm_id})

    async def set_party(self, party: PartyConfig) -> None:
        await self.request("/party/set", build_party_params(party))

    async def get_alarm_config(self) -> AlarmConfig:
        data = await self.request_json("/alarmcfg/get", no_store=True)
        try:
            return parse_alarm_config(data)
        except ValueError as exc:
            raise LampError(str(exc)) from exc

    async def set_alarm_config(
        self, lead_seconds: int, timeout_minutes: int, use_led: bool, use_buzzer: bool
    ) -> None:
        params = build_alarm_config_params(lead_seconds, timeout_minutes, use_led, use_buzzer)
        await self.request("/alarmcfg/set", params)

    async def start_alarm_test(self, duration_seconds: int) -> None:
        await self.request("/alarmtest/start", {"duration": duration_seconds})

    async def stop_alarm_test(self) -> None:
        await self.request("/alarmtest/stop")

    async def reset_alarm(self) -> None:
        await self.request("/alarm/reset", no_store=True)


def find_alarm(alarms: list[Alarm], alarm_id: str) -> Alarm | None:
    return next((alarm for alarm in alarms if alarm.alarm_id == alarm_id), None)
