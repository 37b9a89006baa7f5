"""Data models for night lamp control and alarm operations."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

DEFAULT_BASE_URL = "http://192.168.4.1"


@dataclass(frozen=True)
class Config:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 5.0
    poll_interval: float = 5.0
    clock_interval: float = 1.0
    alarm_refresh_interval: float = 60.0
    push_debounce: float = 0.18
    alarm_config_debounce: float = 0.3
    ramp_tick: float = 0.1
    ramp_settle: float = 0.3


class PartyEffect(IntEnum):
    fade = 0
    strobe = 1
    pulse = 2


class ColorMode(StrEnum):
    rgb = enum.auto()
    random = enum.auto()
    single = enum.auto()


@dataclass(frozen=True)
class DeviceClockSample:
    epoch_seconds: int
    sampled_at_ms: float


@dataclass(frozen=True)
class Alarm:
    alarm_id: str
    hour: int
    minute: int
    days: frozenset[int] = frozenset()
    enabled: bool = True

    @property
    def time(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute

    def matches_day(self, weekday: int) -> bool:
        """Weekday is 0 (Sunday) .. 6 (Saturday); an empty day-set matches every day."""
        return not self.days or weekday in self.days


@dataclass(frozen=True)
class NextAlarm:
    alarm: Alarm
    minutes: int

    def remaining(self) -> str:
        hours, minutes = divmod(self.minutes, 60)
        if hours > 0:
            return f"In {hours}h {minutes}m"
        return f"In {minutes}m"


@dataclass(frozen=True)
class RgbState:
    color: str | None = None
    brightness_raw: int | None = None


@dataclass(frozen=True)
class PartyConfig:
    enabled: bool = False
    music: bool = False
    effect: PartyEffect = PartyEffect.fade
    speed: int = 50
    brightness: int = 80
    mode: ColorMode = ColorMode.rgb
    color: str = "#FF0000"


@dataclass(frozen=True)
class DeviceStatus:
    """Snapshot of `/status`; any field the device omitted is None."""

    epoch: int | None = None
    default_saved: bool = False
    rgb: RgbState | None = None
    hp_raw: int | None = None
    party: PartyConfig | None = None


@dataclass(frozen=True)
class AlarmConfig:
    lead_seconds: int | None = None
    timeout_seconds: int | None = None
    use_led: bool | None = None
    use_buzzer: bool | None = None


@dataclass
class RampTestSession:
    started_at_ms: float
    duration_seconds: int
    fraction: float = 0.0

    def update(self, now_ms: float) -> float:
        elapsed = max(0.0, now_ms - self.started_at_ms)
        self.fraction = min(elapsed / (self.duration_seconds * 1000), 1.0)
        return self.fraction


@dataclass
class AlarmListResult:
    alarms: list[Alarm] = field(default_factory=list)
    skipped: int = 0
