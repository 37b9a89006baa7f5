import asyncio
from unittest.mock import AsyncMock

import pytest

from nightlamp.lib.lamp import NightLamp
from nightlamp.lib.models import (
    Alarm,
    AlarmConfig,
    AlarmListResult,
    Config,
    DeviceStatus,
    PartyConfig,
    PartyEffect,
    RgbState,
)
from nightlamp.main import build_args, handle_command
from nightlamp.scripts.send_request import parse_params
from nightlamp.scripts.watch_status import diff_status, flatten


def make_lamp() -> AsyncMock:
    lamp = AsyncMock(spec=NightLamp)
    lamp.base_url = "http://lamp.test"
    lamp.get_status.return_value = DeviceStatus()
    lamp.list_alarms.return_value = AlarmListResult()
    return lamp


def run_command(argv: list[str], lamp: AsyncMock) -> None:
    args = build_args().parse_args(argv)
    asyncio.run(handle_command(args, lamp, Config()))


def test_url_defaults_to_environment(monkeypatch):
    monkeypatch.setenv("NIGHTLAMP_URL", "http://10.0.0.7")
    args = build_args().parse_args(["status"])
    assert args.url == "http://10.0.0.7"


def test_percent_arguments_are_clamped():
    args = build_args().parse_args(["color", "#00ff80", "--brightness", "150"])
    assert args.hex == "#00FF80"
    assert args.brightness == 100


def test_bad_color_is_rejected():
    with pytest.raises(SystemExit):
        build_args().parse_args(["color", "teal"])


def test_party_flags_default_to_unchanged():
    args = build_args().parse_args(["party", "--speed", "10"])
    assert args.enabled is None
    assert args.music is None


def test_party_keeps_unspecified_fields(capsys):
    lamp = make_lamp()
    lamp.get_status.return_value = DeviceStatus(party=PartyConfig(music=True, brightness=30))

    run_command(["party", "--on", "--speed", "70", "--effect", "pulse"], lamp)

    lamp.set_party.assert_awaited_once_with(
        PartyConfig(enabled=True, music=True, effect=PartyEffect.pulse, speed=70, brightness=30)
    )
    assert "Party:    on" in capsys.readouterr().out


def test_color_keeps_current_brightness():
    lamp = make_lamp()
    lamp.get_status.return_value = DeviceStatus(rgb=RgbState(color="#FFFFFF", brightness_raw=128))

    run_command(["color", "#102030"], lamp)

    lamp.set_rgb.assert_awaited_once_with("#102030", 128)


def test_toggle_unknown_alarm_exits():
    lamp = make_lamp()
    with pytest.raises(SystemExit, match="not found"):
        run_command(["alarms", "enable", "--id", "9"], lamp)
    lamp.toggle_alarm.assert_not_awaited()


def test_disable_alarm(capsys):
    lamp = make_lamp()
    lamp.list_alarms.return_value = AlarmListResult(
        alarms=[Alarm(alarm_id="2", hour=6, minute=30, days=frozenset({1, 2}), enabled=True)]
    )

    run_command(["alarms", "disable", "--id", "2"], lamp)

    lamp.toggle_alarm.assert_awaited_once_with("2", False)
    assert "06:30" in capsys.readouterr().out


def test_add_alarm_decodes_days():
    lamp = make_lamp()
    run_command(["alarms", "add", "7:05", "--days", "MTWTF"], lamp)
    lamp.add_alarm.assert_awaited_once_with(7, 5, frozenset({1, 2, 3, 4, 5}))


def test_add_alarm_clamps_out_of_range_time():
    lamp = make_lamp()
    run_command(["alarms", "add", "24:75"], lamp)
    lamp.add_alarm.assert_awaited_once_with(23, 59, frozenset())


def test_alarm_config_set_keeps_other_values():
    lamp = make_lamp()
    lamp.get_alarm_config.return_value = AlarmConfig(
        lead_seconds=600, timeout_seconds=300, use_led=True, use_buzzer=False
    )

    run_command(["alarm-config", "set", "--buzzer"], lamp)

    lamp.set_alarm_config.assert_awaited_once_with(600, 5, True, True)


def test_parse_params():
    assert parse_params(["val=128", "mode=rgb"]) == {"val": "128", "mode": "rgb"}
    with pytest.raises(ValueError):
        parse_params(["val"])


def test_status_diff():
    before = flatten({"epoch": 1, "rgb": {"color": "#FFFFFF", "brightness_raw": 10}})
    after = flatten({"epoch": 1, "rgb": {"color": "#000000", "brightness_raw": 10}})
    assert diff_status(before, after) == ["rgb.color: '#FFFFFF' -> '#000000'"]
