"""Poll `/status` and print every field that changes between snapshots."""

import asyncio
import logging
import sys
from dataclasses import asdict
from typing import Any

from nightlamp.lib.lamp import LampError, NightLamp

log = logging.getLogger("nightlamp")


def flatten(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten(value, f"{name}."))
        else:
            flat[name] = value
    return flat


def diff_status(previous: dict[str, Any], current: dict[str, Any]) -> list[str]:
    lines = []
    for key in sorted(previous.keys() | current.keys()):
        if previous.get(key) != current.get(key):
            lines.append(f"{key}: {previous.get(key)!r} -> {current.get(key)!r}")
    return lines


async def watch_status(
    lamp: NightLamp, interval: float = 5.0, *, ignore_epoch: bool = True
) -> None:
    previous: dict[str, Any] = {}
    print(f"Watching {lamp.base_url}/status every {interval:.1f}s... (Ctrl+C to stop)\n")
    while True:
        try:
            status = await lamp.get_status()
        except LampError as exc:
            print(f"Status failed: {exc}", file=sys.stderr)
        else:
            current = flatten(asdict(status))
            if ignore_epoch:
                current.pop("epoch", None)
            for line in diff_status(previous, current):
                print(line)
            previous = current
        await asyncio.sleep(interval)
