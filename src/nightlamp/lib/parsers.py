"""Payload parsing and encoding helpers for the night lamp HTTP API."""

from __future__ import annotations

import logging
from typing import Any

from nightlamp.lib.models import (
    Alarm,
    AlarmConfig,
    AlarmListResult,
    ColorMode,
    DeviceStatus,
    PartyConfig,
    PartyEffect,
    RgbState,
)

# Sunday first, matching the device's day row.
WEEKDAY_LABELS = "SMTWTFS"
MAX_RAW = 255
MAX_LEAD_SECONDS = 7200
MIN_TIMEOUT_MINUTES = 1
MAX_TIMEOUT_MINUTES = 120
log = logging.getLogger("nightlamp")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def parse_int(value: Any, default: int = 0) -> int:
    """Lenient integer parse for user input; garbage becomes `default`."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def to_percent(raw: int) -> int:
    return int(round(raw / 2.55))


def to_raw(percent: int) -> int:
    return int(round(percent / 100 * MAX_RAW))


def hex_to_rgb(value: str) -> tuple[int, int, int]:
    cleaned = value.strip().lstrip("#")
    if len(cleaned) != 6:
        raise ValueError(f"Invalid color: {value}.")
    try:
        return int(cleaned[0:2], 16), int(cleaned[2:4], 16), int(cleaned[4:6], 16)
    except ValueError as exc:
        raise ValueError(f"Invalid color: {value}.") from exc


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02X}{g:02X}{b:02X}"


def normalize_color(value: str) -> str:
    return rgb_to_hex(*hex_to_rgb(value))


def encode_days(days: frozenset[int] | set[int]) -> str:
    """Encode a day-set as weekday letters in week order (empty for every day)."""
    return "".join(WEEKDAY_LABELS[index] for index in sorted(days) if 0 <= index < 7)


def decode_days(value: str) -> frozenset[int]:
    """Decode a wire day-set into weekday indices.

    Letters are walked in week order so a repeated label lands on the next
    position carrying it ("TT" is Tuesday and Thursday, "SS" Sunday and
    Saturday). Digits are taken as explicit indices.
    """
    cleaned = "".join(c for c in value.upper() if not c.isspace() and c != ",")
    if not cleaned:
        return frozenset()
    if cleaned.isdigit():
        return frozenset(int(c) for c in cleaned if int(c) < 7)

    indices: set[int] = set()
    cursor = 0
    for letter in cleaned:
        position = WEEKDAY_LABELS.find(letter, cursor)
        if position < 0:
            log.debug("Ignoring day label %r in %r", letter, value)
            continue
        indices.add(position)
        cursor = position + 1
    return frozenset(indices)


def describe_days(days: frozenset[int]) -> str:
    if not days:
        return "day"
    return ",".join(WEEKDAY_LABELS[index] for index in sorted(days))


def parse_time_of_day(value: str, *, strict: bool = True) -> tuple[int, int]:
    """Parse `HH:MM`. Out-of-range parts raise, or are clamped when not `strict`."""
    hour_text, sep, minute_text = value.strip().partition(":")
    if not sep:
        raise ValueError(f"Invalid time of day: {value!r}")
    try:
        hour, minute = int(hour_text), int(minute_text)
    except ValueError as exc:
        raise ValueError(f"Invalid time of day: {value!r}") from exc
    if not strict:
        return clamp(hour, 0, 23), clamp(minute, 0, 59)
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time of day out of range: {value!r}")
    return hour, minute


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return None


def parse_rgb(data: Any) -> RgbState | None:
    if not isinstance(data, dict):
        return None
    channels = [_as_int(data.get(key)) for key in ("r", "g", "b")]
    color = None
    if all(c is not None for c in channels):
        r, g, b = (clamp(c, 0, MAX_RAW) for c in channels if c is not None)
        color = rgb_to_hex(r, g, b)
    brightness = _as_int(data.get("bri"))
    if brightness is not None:
        brightness = clamp(brightness, 0, MAX_RAW)
    if color is None and brightness is None:
        return None
    return RgbState(color=color, brightness_raw=brightness)


def parse_party(data: Any, fallback: PartyConfig | None = None) -> PartyConfig | None:
    """Parse the `party` block; fields the device omits keep their fallback value."""
    if not isinstance(data, dict):
        return None
    base = fallback or PartyConfig()

    effect = base.effect
    raw_effect = _as_int(data.get("effect"))
    if raw_effect is not None:
        try:
            effect = PartyEffect(raw_effect)
        except ValueError:
            log.debug("Unknown party effect %s", raw_effect)

    mode = base.mode
    raw_mode = data.get("modeName") or data.get("mode")
    if isinstance(raw_mode, str):
        try:
            mode = ColorMode(raw_mode.lower())
        except ValueError:
            log.debug("Unknown party color mode %r", raw_mode)

    color = base.color
    raw_color = data.get("color")
    if isinstance(raw_color, str) and raw_color:
        try:
            color = normalize_color(raw_color)
        except ValueError:
            log.debug("Ignoring party color %r", raw_color)

    speed = _as_int(data.get("speed"))
    brightness = _as_int(data.get("bri"))
    enabled = _as_bool(data.get("enabled"))
    music = _as_bool(data.get("music"))
    return PartyConfig(
        enabled=base.enabled if enabled is None else enabled,
        music=base.music if music is None else music,
        effect=effect,
        speed=base.speed if speed is None else clamp(speed, 0, 100),
        brightness=base.brightness if brightness is None else clamp(brightness, 0, 100),
        mode=mode,
        color=color,
    )


def parse_status(data: Any, party_fallback: PartyConfig | None = None) -> DeviceStatus:
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object for status, got {type(data).__name__}")
    hp = _as_int(data.get("hp"))
    return DeviceStatus(
        epoch=_as_int(data.get("epoch")),
        default_saved=bool(_as_bool(data.get("defaultSaved"))),
        rgb=parse_rgb(data.get("rgb")),
        hp_raw=None if hp is None else clamp(hp, 0, MAX_RAW),
        party=parse_party(data.get("party"), party_fallback),
    )


def parse_alarm(data: Any) -> Alarm:
    if not isinstance(data, dict):
        raise ValueError(f"Alarm entry is not an object: {data!r}")
    alarm_id = data.get("id")
    if alarm_id is None:
        raise ValueError(f"Alarm entry without id: {data!r}")
    time_value = data.get("time")
    if not isinstance(time_value, str):
        raise ValueError(f"Alarm entry without time: {data!r}")
    hour, minute = parse_time_of_day(time_value)
    days = data.get("days")
    return Alarm(
        alarm_id=str(alarm_id),
        hour=hour,
        minute=minute,
        days=decode_days(days) if isinstance(days, str) else frozenset(),
        enabled=bool(_as_bool(data.get("enabled"))),
    )


def parse_alarm_list(data: Any) -> AlarmListResult:
    """Parse `/alarms/list`, keeping device order and skipping broken entries."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object for alarm list, got {type(data).__name__}")
    entries = data.get("alarms")
    result = AlarmListResult()
    if not isinstance(entries, list):
        return result
    for entry in entries:
        try:
            result.alarms.append(parse_alarm(entry))
        except ValueError as exc:
            log.debug("Skipping alarm entry: %s", exc)
            result.skipped += 1
    return result


def parse_alarm_config(data: Any) -> AlarmConfig:
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object for alarm config, got {type(data).__name__}")
    use_led = data.get("useLED")
    use_buzzer = data.get("useBuzzer")
    return AlarmConfig(
        lead_seconds=_as_int(data.get("leadSec")),
        timeout_seconds=_as_int(data.get("timeoutSec")),
        use_led=use_led if isinstance(use_led, bool) else None,
        use_buzzer=use_buzzer if isinstance(use_buzzer, bool) else None,
    )


def build_party_params(party: PartyConfig) -> dict[str, str]:
    r, g, b = hex_to_rgb(party.color)
    return {
        "on": "1" if party.enabled else "0",
        "music": "1" if party.music else "0",
        "effect": str(int(party.effect)),
        "speed": str(party.speed),
        "bri": str(party.brightness),
        "mode": str(party.mode),
        "r": str(r),
        "g": str(g),
        "b": str(b),
    }


def build_alarm_config_params(
    lead_seconds: int, timeout_minutes: int, use_led: bool, use_buzzer: bool
) -> dict[str, str]:
    lead = clamp(lead_seconds, 0, MAX_LEAD_SECONDS)
    timeout = clamp(timeout_minutes, MIN_TIMEOUT_MINUTES, MAX_TIMEOUT_MINUTES)
    return {
        "lead": str(lead),
        "led": "1" if use_led else "0",
        "buzz": "1" if use_buzzer else "0",
        "timeout": str(timeout * 60),
    }
