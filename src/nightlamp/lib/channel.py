"""Optimistic edits, debounced pushes and status reconciliation for lamp settings."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from nightlamp.lib.lamp import LampError

T = TypeVar("T")
log = logging.getLogger("nightlamp")


class Debouncer:
    """Trailing-edge debounce with one pending task per key.

    Scheduling a key again cancels its pending timer outright. Once the timer
    has fired the action is no longer superseded by new edits, but it stays
    tracked until it returns so `aclose()` can stop it.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._firing: set[asyncio.Task[None]] = set()

    def schedule(
        self,
        key: str,
        delay: float,
        action: Callable[[], Awaitable[None]],
    ) -> asyncio.Task[None]:
        previous = self._pending.pop(key, None)
        if previous is not None and not previous.done():
            log.debug("Debounce %s: superseding pending push", key)
            previous.cancel()
        task = asyncio.create_task(self._fire(key, delay, action), name=f"debounce-{key}")
        self._pending[key] = task
        return task

    async def _fire(self, key: str, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(delay)
        task = asyncio.current_task()
        if self._pending.get(key) is task:
            del self._pending[key]
        if task is not None:
            self._firing.add(task)
        try:
            await action()
        finally:
            self._firing.discard(task)

    def is_pending(self, key: str) -> bool:
        task = self._pending.get(key)
        return task is not None and not task.done()

    def cancel_all(self) -> list[asyncio.Task[None]]:
        tasks = [*self._pending.values(), *self._firing]
        for task in tasks:
            task.cancel()
        self._pending.clear()
        self._firing.clear()
        return tasks

    async def aclose(self) -> None:
        """Cancel timers and running actions, and wait for them to unwind."""
        current = asyncio.current_task()
        for task in self.cancel_all():
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task


@dataclass
class ConfigField(Generic[T]):
    name: str
    value: T
    confirmed: T | None = None
    pending: bool = False
    in_flight: bool = False
    edits: int = 0

    def edit(self, value: T) -> None:
        self.value = value
        self.pending = True
        self.edits += 1

    def mark_pushed(self) -> None:
        if self.pending:
            self.pending = False
            self.in_flight = True

    def reconcile(self, confirmed: T, edits_seen: int) -> bool:
        """Store the device value and show it unless a local edit is pending.

        Pending means edited but not pushed yet, or edited after the fetch
        started (`edits_seen`). An edit that was already pushed is
        overwritten: the last fetched snapshot wins even if the device had
        not applied the push yet.
        """
        self.confirmed = confirmed
        if self.pending or self.edits != edits_seen:
            return False
        self.pending = False
        self.in_flight = False
        changed = self.value != confirmed
        self.value = confirmed
        return changed


class SettingGroup:
    """Fields that travel to the device together in a single request."""

    def __init__(
        self,
        name: str,
        fields: Mapping[str, Any],
        push: Callable[[dict[str, Any]], Awaitable[None]],
        debouncer: Debouncer,
        delay: float,
        on_pushed: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.name = name
        self.fields: dict[str, ConfigField[Any]] = {
            key: ConfigField(name=key, value=value) for key, value in fields.items()
        }
        self._push = push
        self._debouncer = debouncer
        self._delay = delay
        self._on_pushed = on_pushed
        self._push_task: asyncio.Task[Any] | None = None

    def __getitem__(self, key: str) -> Any:
        return self.fields[key].value

    def values(self) -> dict[str, Any]:
        return {key: field.value for key, field in self.fields.items()}

    def edit(self, **changes: Any) -> None:
        for key, value in changes.items():
            if key not in self.fields:
                raise KeyError(f"{self.name} has no field {key!r}")
            self.fields[key].edit(value)
        log.debug("Edit %s %s", self.name, changes)
        self._debouncer.schedule(self.name, self._delay, self.push_now)

    @property
    def dirty(self) -> bool:
        return self._debouncer.is_pending(self.name) or any(
            field.pending for field in self.fields.values()
        )

    async def push_now(self) -> None:
        values = self.values()
        for field in self.fields.values():
            field.mark_pushed()
        self._push_task = asyncio.current_task()
        try:
            await self._push(values)
        except LampError as exc:
            log.debug("Push %s failed: %s", self.name, exc)
        finally:
            self._push_task = None
        if self._on_pushed is not None:
            await self._on_pushed()

    async def wait_in_flight(self) -> None:
        task = self._push_task
        if task is None or task.done() or task is asyncio.current_task():
            return
        await asyncio.wait({task})

    def edit_marks(self) -> dict[str, int]:
        return {key: field.edits for key, field in self.fields.items()}

    def reconcile(self, confirmed: Mapping[str, Any], marks: Mapping[str, int]) -> bool:
        changed = False
        for key, value in confirmed.items():
            field = self.fields.get(key)
            if field is None or value is None:
                continue
            changed |= field.reconcile(value, marks.get(key, field.edits))
        return changed


class TransientLabel:
    """Button caption that flashes a confirmation and reverts on its own."""

    def __init__(self, idle: str, hold: float) -> None:
        self.idle = idle
        self.hold = hold
        self.text = idle
        self.enabled = True
        self._revert: asyncio.TimerHandle | None = None

    def flash(self, text: str) -> None:
        self.cancel()
        self.text = text
        self._revert = asyncio.get_running_loop().call_later(self.hold, self._reset)

    def _reset(self) -> None:
        self.text = self.idle
        self._revert = None

    def cancel(self) -> None:
        if self._revert is not None:
            self._revert.cancel()
            self._revert = None
        self.text = self.idle
