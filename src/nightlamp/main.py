"""Command line controller for the night lamp."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace

from nightlamp.lib.alarms import AlarmStore, format_next_alarm
from nightlamp.lib.clock import ClockModel, local_sync_payload
from nightlamp.lib.controller import LampController
from nightlamp.lib.lamp import NightLamp, find_alarm
from nightlamp.lib.models import (
    DEFAULT_BASE_URL,
    AlarmConfig,
    ColorMode,
    Config,
    DeviceStatus,
    PartyConfig,
    PartyEffect,
)
from nightlamp.lib.parsers import (
    decode_days,
    normalize_color,
    parse_time_of_day,
    to_percent,
    to_raw,
)
from nightlamp.lib.ramp import RampTestSimulator
from nightlamp.scripts.send_request import parse_params, send_request
from nightlamp.scripts.watch_status import watch_status

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
URL_ENV = "NIGHTLAMP_URL"
log = logging.getLogger("nightlamp")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, force=True)
    project_level = logging.DEBUG if debug else logging.WARNING
    log.setLevel(project_level)


def print_error(message: str) -> None:
    print(message, file=sys.stderr)


def percent(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"{value!r} is not a whole number") from exc
    return max(0, min(100, number))


def color(value: str) -> str:
    try:
        return normalize_color(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_args() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Control the night lamp over HTTP.")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for HTTP requests, responses, and sync steps.",
    )
    parser.add_argument(
        "-u",
        "--url",
        default=os.environ.get(URL_ENV, DEFAULT_BASE_URL),
        help=f"Lamp base URL. Default is ${URL_ENV} or {DEFAULT_BASE_URL}",
    )
    parser.add_argument("--timeout", type=float, default=5.0, help="HTTP timeout in seconds.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show clock, lamp color, white LED and party state.")
    subparsers.add_parser("sync-time", help="Send this machine's time to the lamp.")
    subparsers.add_parser(
        "watch",
        help="Keep polling the lamp and show a live clock and next alarm.",
    )
    subparsers.add_parser("reset-alarm", help="Silence the alarm that is currently ringing.")

    color_cmd = subparsers.add_parser("color", help="Set lamp color and brightness.")
    color_cmd.add_argument("hex", type=color, help="Color as #RRGGBB.")
    color_cmd.add_argument(
        "--brightness",
        type=percent,
        help="Brightness in percent. Keeps the current brightness if omitted.",
    )

    white = subparsers.add_parser("white", help="Set white LED intensity.")
    white.add_argument("level", type=percent, help="Intensity in percent.")

    default = subparsers.add_parser("default", help="Save or restore the default lamp state.")
    default.add_argument("action", choices=["save", "apply"])

    party = subparsers.add_parser(
        "party",
        help="Change party mode. Unspecified options keep their current value.",
    )
    party_on = party.add_mutually_exclusive_group()
    party_on.add_argument("--on", dest="enabled", action="store_true", default=None)
    party_on.add_argument("--off", dest="enabled", action="store_false")
    party_music = party.add_mutually_exclusive_group()
    party_music.add_argument("--music", dest="music", action="store_true", default=None)
    party_music.add_argument("--no-music", dest="music", action="store_false")
    party.add_argument("--effect", choices=[effect.name for effect in PartyEffect])
    party.add_argument("--speed", type=percent)
    party.add_argument("--brightness", type=percent)
    party.add_argument("--mode", choices=[mode.value for mode in ColorMode])
    party.add_argument("--color", type=color, help="Single-mode color as #RRGGBB.")

    alarms = subparsers.add_parser("alarms", help="List and edit alarms.")
    alarms_subparsers = alarms.add_subparsers(dest="alarms_command", required=True)

    alarms_subparsers.add_parser("list", help="List alarms.")
    alarms_subparsers.add_parser("next", help="Show the next alarm to fire.")

    alarms_add = alarms_subparsers.add_parser("add", help="Add an alarm.")
    alarms_add.add_argument("time", help="Time of day as HH:MM.")
    alarms_add.add_argument(
        "--days",
        default="",
        help="Weekday letters in week order starting Sunday (e.g. 'MTWTF'). Empty is every day.",
    )

    for name, help_text in (
        ("enable", "Enable an alarm."),
        ("disable", "Disable an alarm."),
        ("delete", "Delete an alarm."),
    ):
        sub = alarms_subparsers.add_parser(name, help=help_text)
        sub.add_argument("--id", required=True, help="Alarm ID as shown by 'alarms list'.")

    alarm_config = subparsers.add_parser("alarm-config", help="Wake-up ramp and alarm output.")
    alarm_config_subparsers = alarm_config.add_subparsers(
        dest="alarm_config_command", required=True
    )
    alarm_config_subparsers.add_parser("get", help="Show alarm settings.")
    alarm_config_set = alarm_config_subparsers.add_parser("set", help="Change alarm settings.")
    alarm_config_set.add_argument("--lead", type=int, help="Ramp lead time in seconds.")
    alarm_config_set.add_argument("--timeout", type=int, help="Alarm timeout in minutes.")
    led = alarm_config_set.add_mutually_exclusive_group()
    led.add_argument("--led", dest="led", action="store_true", default=None)
    led.add_argument("--no-led", dest="led", action="store_false")
    buzzer = alarm_config_set.add_mutually_exclusive_group()
    buzzer.add_argument("--buzzer", dest="buzzer", action="store_true", default=None)
    buzzer.add_argument("--no-buzzer", dest="buzzer", action="store_false")

    test_ramp = subparsers.add_parser("test-ramp", help="Run the wake-up ramp as a test.")
    test_ramp.add_argument(
        "--seconds",
        type=int,
        help="Test duration. Defaults to the configured ramp lead time.",
    )

    dev = subparsers.add_parser("dev", help="Developer utilities.")
    dev_subparsers = dev.add_subparsers(dest="dev_command", required=True)

    dev_get = dev_subparsers.add_parser("get", help="Send a raw GET request to an endpoint.")
    dev_get.add_argument("path", help="Endpoint path, e.g. /status.")
    dev_get.add_argument(
        "--param",
        action="append",
        default=[],
        help="Query parameter as KEY=VALUE. Repeatable.",
    )

    dev_watch = dev_subparsers.add_parser(
        "watch-status", help="Print status fields as they change."
    )
    dev_watch.add_argument("--interval", type=float, default=5.0)

    return parser


def format_status(status: DeviceStatus, clock: ClockModel) -> list[str]:
    lines = []
    rendered = clock.render()
    if rendered is not None:
        time_str, date_str, source = rendered
        lines.append(f"Time:     {time_str}  {date_str}  ({source})")
    if status.rgb is not None:
        raw = status.rgb.brightness_raw
        brightness = "?" if raw is None else to_percent(raw)
        lines.append(f"Lamp:     {status.rgb.color or '?'}  {brightness}%")
    if status.hp_raw is not None:
        lines.append(f"White:    {to_percent(status.hp_raw)}%")
    if status.party is not None:
        p = status.party
        lines.append(
            f"Party:    {'on' if p.enabled else 'off'}  music={'on' if p.music else 'off'}  "
            f"effect={p.effect.name}  speed={p.speed}  bri={p.brightness}  mode={p.mode}  "
            f"color={p.color}"
        )
    lines.append(f"Default:  {'saved' if status.default_saved else 'not saved'}")
    return lines


def print_alarm_report(store: AlarmStore) -> None:
    rows = store.rows()
    if not rows:
        print("No alarms have been set yet.")
        return
    print(f"{'ID':>6}  {'Time':<5}  {'Enabled':>7}  Days")
    print("-" * 40)
    for alarm, description in rows:
        enabled = "YES" if alarm.enabled else "NO"
        print(f"{alarm.alarm_id:>6}  {alarm.time:<5}  {enabled:>7}  {description}")


def render_dashboard(controller: LampController) -> str:
    rendered = controller.clock.render()
    clock_text = "  ".join(rendered[:2]) if rendered else "--:--:--"
    next_time, remaining = format_next_alarm(controller.alarms.next_alarm)
    lamp = f"{controller.rgb['color']} {controller.rgb['brightness']}%"
    party = "party on" if controller.party["enabled"] else "party off"
    white = f"{controller.hp['level']}%"
    return f"{clock_text} | lamp {lamp} | white {white} | {party} | next {next_time} ({remaining})"


async def run_watch(controller: LampController) -> None:
    await controller.init()
    try:
        while True:
            print("\r" + render_dashboard(controller), end="", flush=True)
            await asyncio.sleep(controller.config.clock_interval)
    finally:
        print()
        await controller.dispose()


async def run_ramp_test(lamp: NightLamp, config: Config, seconds: int | None) -> None:
    if seconds is None:
        cfg = await lamp.get_alarm_config()
        seconds = cfg.lead_seconds or 0
    simulator = RampTestSimulator(lamp, tick=config.ramp_tick, settle=config.ramp_settle)
    if not await simulator.start(seconds):
        raise SystemExit(f"Ramp test not started (duration {seconds}s).")
    try:
        while simulator.running:
            print(f"\rRamp test: {simulator.width:>6}", end="", flush=True)
            await asyncio.sleep(config.ramp_tick)
        print(f"\rRamp test: {simulator.width:>6}")
    except asyncio.CancelledError:
        await simulator.stop(manual=True)
        print("\nRamp test stopped.")
        raise
    finally:
        simulator.dispose()


async def run(args: argparse.Namespace, config: Config) -> None:
    lamp = NightLamp.connect(config)
    try:
        await handle_command(args, lamp, config)
    finally:
        await lamp.close()


async def handle_command(args: argparse.Namespace, lamp: NightLamp, config: Config) -> None:
    log.debug(
        "Handling command=%s alarms_command=%s dev_command=%s",
        args.command,
        getattr(args, "alarms_command", None),
        getattr(args, "dev_command", None),
    )

    if args.command == "status":
        status = await lamp.get_status()
        clock = ClockModel()
        if status.epoch is not None:
            clock.set_sample(status.epoch)
        print("\n".join(format_status(status, clock)))
        return

    if args.command == "sync-time":
        epoch, tz_offset = local_sync_payload()
        await lamp.set_time(epoch, tz_offset)
        status = await lamp.get_status()
        if status.epoch is None:
            raise SystemExit("Lamp did not report its time after sync.")
        clock = ClockModel()
        clock.set_sample(status.epoch)
        print("\n".join(format_status(status, clock)[:1]))
        return

    if args.command == "watch":
        await run_watch(LampController(lamp, config))
        return

    if args.command == "reset-alarm":
        await lamp.reset_alarm()
        return

    if args.command == "color":
        brightness = args.brightness
        if brightness is None:
            status = await lamp.get_status()
            raw = status.rgb.brightness_raw if status.rgb else None
            brightness = 100 if raw is None else to_percent(raw)
        await lamp.set_rgb(args.hex, to_raw(brightness))
        return

    if args.command == "white":
        await lamp.set_hp(to_raw(args.level))
        return

    if args.command == "default":
        if args.action == "save":
            await lamp.save_default()
        else:
            await lamp.apply_default()
        return

    if args.command == "party":
        changes = {
            key: getattr(args, key)
            for key in ("enabled", "music", "speed", "brightness", "color")
            if getattr(args, key) is not None
        }
        if args.effect is not None:
            changes["effect"] = PartyEffect[args.effect]
        if args.mode is not None:
            changes["mode"] = ColorMode(args.mode)
        if not changes:
            raise SystemExit("Nothing to change.")
        status = await lamp.get_status()
        party = replace(status.party or PartyConfig(), **changes)
        await lamp.set_party(party)
        print(format_status(replace(status, party=party), ClockModel())[-2])
        return

    if args.command == "alarms":
        await handle_alarms(args, lamp)
        return

    if args.command == "alarm-config":
        await handle_alarm_config(args, lamp)
        return

    if args.command == "test-ramp":
        await run_ramp_test(lamp, config, args.seconds)
        return

    if args.command == "dev":
        await handle_dev(args, lamp)


async def handle_alarms(args: argparse.Namespace, lamp: NightLamp) -> None:
    store = AlarmStore(lamp)
    store.alarms = (await lamp.list_alarms()).alarms

    if args.alarms_command == "list":
        print_alarm_report(store)
        return

    if args.alarms_command == "next":
        next_time, remaining = format_next_alarm(store.recompute(None))
        print(f"{next_time}  {remaining}")
        return

    if args.alarms_command == "add":
        try:
            hour, minute = parse_time_of_day(args.time, strict=False)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        await lamp.add_alarm(hour, minute, decode_days(args.days))
    else:
        if find_alarm(store.alarms, args.id) is None:
            raise SystemExit(f"Alarm '{args.id}' not found.")
        if args.alarms_command in {"enable", "disable"}:
            await lamp.toggle_alarm(args.id, args.alarms_command == "enable")
        elif args.alarms_command == "delete":
            await lamp.delete_alarm(args.id)

    store.alarms = (await lamp.list_alarms()).alarms
    print_alarm_report(store)


async def handle_alarm_config(args: argparse.Namespace, lamp: NightLamp) -> None:
    cfg = await lamp.get_alarm_config()

    if args.alarm_config_command == "set":
        changes = {
            key: getattr(args, key)
            for key in ("lead", "timeout", "led", "buzzer")
            if getattr(args, key) is not None
        }
        if not changes:
            raise SystemExit("Nothing to change.")
        current_timeout = round((cfg.timeout_seconds or 600) / 60)
        await lamp.set_alarm_config(
            changes.get("lead", cfg.lead_seconds or 0),
            changes.get("timeout", current_timeout),
            changes.get("led", bool(cfg.use_led)),
            changes.get("buzzer", bool(cfg.use_buzzer)),
        )
        cfg = await lamp.get_alarm_config()

    print_alarm_config(cfg)


def print_alarm_config(cfg: AlarmConfig) -> None:
    def show(value: object, suffix: str = "") -> str:
        if value is None:
            return "?"
        if isinstance(value, bool):
            return "on" if value else "off"
        return f"{value}{suffix}"

    timeout = None if cfg.timeout_seconds is None else round(cfg.timeout_seconds / 60)
    print(f"Ramp lead:  {show(cfg.lead_seconds, 's')}")
    print(f"Timeout:    {show(timeout, ' min')}")
    print(f"LED:        {show(cfg.use_led)}")
    print(f"Buzzer:     {show(cfg.use_buzzer)}")


async def handle_dev(args: argparse.Namespace, lamp: NightLamp) -> None:
    if args.dev_command == "get":
        try:
            params = parse_params(args.param)
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        print(await send_request(lamp, args.path, params))
        return

    if args.dev_command == "watch-status":
        await watch_status(lamp, args.interval)
        return


def main() -> None:
    parser = build_args()
    args = parser.parse_args()
    configure_logging(args.debug)
    log.debug("CLI args: %s", args)

    config = Config(base_url=args.url, timeout=args.timeout)
    log.debug("Using config=%s", config)

    try:
        asyncio.run(run(args, config))
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except SystemExit as exc:
        if isinstance(exc.code, str) and exc.code:
            print_error(exc.code)
            raise SystemExit(1) from None
        raise
    except Exception as exc:
        log.debug("Operation failed with config=%s", config, exc_info=True)
        print_error(f"Operation failed: {exc}")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
