"""Polling and command routing for configured Yamaha receivers."""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Protocol

from .binding import BindingConfigStore, ItemBinding
from .const import DEFAULT_REFRESH_INTERVAL, VOLUME_STEP_DB
from .conversion import clamp_db, percent_to_db
from .errors import CommunicationError, ConfigurationError
from .registry import DeviceProxy, DeviceRegistry
from .state import (
    VOLUME_KINDS,
    AttributeKind,
    Command,
    DeviceState,
    LiteralCommand,
    OnOffCommand,
    PercentCommand,
    StepCommand,
    parse_command,
    parse_string,
)

# Publication order within one device update.
_PUBLISH_ORDER: tuple[AttributeKind, ...] = (
    AttributeKind.POWER,
    AttributeKind.MUTE,
    AttributeKind.INPUT,
    AttributeKind.SURROUND_PROGRAM,
    AttributeKind.VOLUME_PERCENT,
    AttributeKind.VOLUME_DB,
)


class EventSink(Protocol):
    """Receiver of item state updates."""

    def publish(
        self, item_id: str, kind: AttributeKind, value: Any
    ) -> Awaitable[None] | None:
        """Publish ``value`` for ``item_id``."""


@dataclass(slots=True)
class PollResult:
    """Outcome of one poll cycle."""

    updated: list[str] = field(default_factory=list)
    failures: dict[str, CommunicationError] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)


class YamahaReceiverCoordinator:
    """Poll registered receivers and route item commands to them."""

    def __init__(
        self,
        *,
        registry: DeviceRegistry,
        bindings: BindingConfigStore,
        sink: EventSink,
        refresh_interval: timedelta | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialise the coordinator with its collaborators."""

        self._registry = registry
        self._bindings = bindings
        self._sink = sink
        self.update_interval = refresh_interval or DEFAULT_REFRESH_INTERVAL
        self.logger = logger or logging.getLogger(__name__)
        self._command_logger = self.logger.getChild("command")

        self._loop: asyncio.AbstractEventLoop | None = None
        self._refresh_task: asyncio.TimerHandle | None = None
        self._pending_tasks: set[asyncio.Task[Any]] = set()
        self._cycle_lock = asyncio.Lock()
        self._device_locks: dict[str, asyncio.Lock] = {}
        self._stopped = True

        self.last_failures: dict[str, CommunicationError] = {}

    @property
    def _refresh_interval_seconds(self) -> float:
        """Expose the refresh interval as seconds."""

        return self.update_interval.total_seconds()

    @property
    def is_running(self) -> bool:
        """Return True while periodic polling is active."""

        return not self._stopped

    def _device_lock(self, device_id: str) -> asyncio.Lock:
        """Return the lock serialising access to ``device_id``."""

        return self._device_locks.setdefault(device_id, asyncio.Lock())

    async def async_start(self, *, refresh_now: bool = False) -> None:
        """Begin periodic polling."""

        self._loop = asyncio.get_running_loop()
        self._stopped = False
        delay = 0.0 if refresh_now else self._refresh_interval_seconds
        self._schedule_refresh(delay)

    async def async_stop(self) -> None:
        """Stop periodic polling and wait for a running cycle to finish."""

        self._stopped = True
        self.cancel_refresh()
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)

    def cancel_refresh(self) -> None:
        """Cancel any scheduled refresh callback."""

        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    def _schedule_refresh(self, delay: float) -> None:
        """Arm the timer for the next poll cycle."""

        if self._loop is None:
            msg = "Coordinator has not been started"
            raise RuntimeError(msg)
        self.cancel_refresh()
        self._refresh_task = self._loop.call_later(delay, self._handle_refresh_timer)

    def _handle_refresh_timer(self) -> None:
        """Start a scheduled poll cycle."""

        self._refresh_task = None
        if self._stopped or self._loop is None:
            return
        task = self._loop.create_task(self._async_scheduled_poll())
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _async_scheduled_poll(self) -> None:
        """Run one cycle and arm the timer once it has finished."""

        assert self._loop is not None
        started = self._loop.time()
        try:
            await self.async_poll()
        except Exception:  # pragma: no cover - keep the schedule alive
            self.logger.exception("Error polling receivers")
        finally:
            if not self._stopped:
                elapsed = self._loop.time() - started
                delay = max(0.0, self._refresh_interval_seconds - elapsed)
                self._schedule_refresh(delay)

    async def async_reconfigure(
        self,
        proxies: Mapping[str, DeviceProxy],
        bindings: Iterable[ItemBinding],
        refresh_interval: timedelta | None = None,
    ) -> None:
        """Swap in new proxies and bindings between poll cycles."""

        async with self._cycle_lock:
            for device_id, proxy in proxies.items():
                self._registry.register(device_id, proxy)
            self._bindings.replace(bindings)
            if refresh_interval is not None:
                self.update_interval = refresh_interval
        self.logger.debug(
            "Reconfigured %d devices and %d items", len(proxies), len(self._bindings)
        )

    async def async_request_refresh(self) -> PollResult:
        """Run a poll cycle now, after any cycle already in progress."""

        return await self.async_poll()

    async def async_poll(self) -> PollResult:
        """Poll every registered receiver and publish bound item states."""

        async with self._cycle_lock:
            proxies = self._registry.snapshot()
            outcomes = await asyncio.gather(
                *(
                    self._async_poll_device(device_id, proxy)
                    for device_id, proxy in proxies.items()
                )
            )

        result = PollResult()
        for device_id, error in zip(proxies, outcomes):
            if error is None:
                result.updated.append(device_id)
            elif isinstance(error, CommunicationError):
                result.failures[device_id] = error
            else:
                result.errors[device_id] = error
        self.logger.debug(
            "Poll cycle finished: %d updated, %d failed",
            len(result.updated),
            len(result.failures) + len(result.errors),
        )
        return result

    async def _async_poll_device(
        self, device_id: str, proxy: DeviceProxy
    ) -> Exception | None:
        """Poll one receiver; any failure stays with this device."""

        try:
            async with self._device_lock(device_id):
                state = await proxy.async_get_state()
        except CommunicationError as err:
            self.logger.warning(
                "Cannot communicate with %s (uid: %s): %s", proxy.host, device_id, err
            )
            self.last_failures[device_id] = err
            return err
        except Exception as err:
            self.logger.exception("Error polling %s (uid: %s)", proxy.host, device_id)
            return err

        self.last_failures.pop(device_id, None)
        try:
            await self._async_publish_state(device_id, state)
        except Exception as err:
            self.logger.exception("Error publishing state of uid %s", device_id)
            return err
        return None

    async def _async_publish_state(
        self,
        device_id: str,
        state: DeviceState,
        kinds: Iterable[AttributeKind] = _PUBLISH_ORDER,
    ) -> None:
        """Publish ``state`` to the items bound to ``device_id``."""

        wanted = set(kinds)
        bindings = sorted(
            self._bindings.bindings_for_device(device_id),
            key=lambda binding: binding.item_id,
        )
        for kind in _PUBLISH_ORDER:
            if kind not in wanted:
                continue
            value = state.value_for(kind)
            if value is None:
                continue
            for binding in bindings:
                if binding.kind is kind:
                    await self._async_publish(binding.item_id, kind, value)

    async def _async_publish(
        self, item_id: str, kind: AttributeKind, value: Any
    ) -> None:
        """Hand a single update to the sink."""

        result = self._sink.publish(item_id, kind, value)
        if inspect.isawaitable(result):
            await result

    def _resolve(self, item_id: str) -> tuple[ItemBinding, DeviceProxy]:
        """Look up the binding and proxy addressed by ``item_id``."""

        binding = self._bindings.resolve_item(item_id)
        if binding is None:
            self._command_logger.error(
                "Received command for unknown item '%s'", item_id
            )
            raise ConfigurationError(f"Unknown item '{item_id}'")

        proxy = self._registry.lookup(binding.device_id)
        if proxy is None:
            self._command_logger.error(
                "Received command for unknown device uid '%s'", binding.device_id
            )
            raise ConfigurationError(f"Unknown device uid '{binding.device_id}'")
        return binding, proxy

    async def async_handle_command(self, item_id: str, payload: Any) -> None:
        """Apply an inbound item command to the bound receiver."""

        binding, proxy = self._resolve(item_id)
        command = parse_command(payload, binding.kind)
        self._command_logger.debug(
            "Processing command %r for item '%s' (%s)",
            command,
            item_id,
            binding.kind.value,
        )

        state: DeviceState | None = None
        try:
            async with self._device_lock(binding.device_id):
                wrote_volume = await self._async_dispatch(proxy, binding.kind, command)
                if wrote_volume:
                    # one volume write changes both the dB and percent items
                    state = await proxy.async_get_state()
        except CommunicationError as err:
            self._command_logger.warning(
                "Cannot communicate with %s (uid: %s): %s",
                proxy.host,
                binding.device_id,
                err,
            )
            raise

        if state is not None:
            await self._async_publish_state(binding.device_id, state, VOLUME_KINDS)

    async def _async_dispatch(
        self, proxy: DeviceProxy, kind: AttributeKind, command: Command
    ) -> bool:
        """Issue the proxy write for ``command``; return True for volume writes."""

        if kind is AttributeKind.POWER or kind is AttributeKind.MUTE:
            if not isinstance(command, OnOffCommand):
                self._ignore(kind, command)
                return False
            if kind is AttributeKind.POWER:
                await proxy.async_set_power(command.on)
            else:
                await proxy.async_set_mute(command.on)
            return False

        if kind.is_volume:
            volume_db = await self._async_target_volume(proxy, kind, command)
            if volume_db is None:
                return False
            await proxy.async_set_volume_db(volume_db)
            return True

        if not isinstance(command, LiteralCommand):
            self._ignore(kind, command)
            return False
        name = parse_string(command.text)
        if kind is AttributeKind.INPUT:
            await proxy.async_set_input(name)
        else:
            await proxy.async_set_surround_program(name)
        return False

    async def _async_target_volume(
        self, proxy: DeviceProxy, kind: AttributeKind, command: Command
    ) -> float | None:
        """Compute the decibel value a volume command asks for."""

        if isinstance(command, StepCommand):
            # re-read: the volume may have changed outside this service
            current = (await proxy.async_get_state()).volume_db
            if current is None:
                raise CommunicationError(proxy.host, "volume level not reported")
            return clamp_db(current + command.direction * VOLUME_STEP_DB)
        if isinstance(command, PercentCommand):
            return float(percent_to_db(command.value))
        if isinstance(command, LiteralCommand):
            try:
                volume_db = float(parse_string(command.text))
            except ValueError as err:
                raise ConfigurationError(
                    f"Invalid volume {command.text!r}"
                ) from err
            if not math.isfinite(volume_db):
                raise ConfigurationError(f"Invalid volume {command.text!r}")
            return clamp_db(volume_db)
        self._ignore(kind, command)
        return None

    def _ignore(self, kind: AttributeKind, command: Command) -> None:
        """Log a command shape that does not apply to ``kind``."""

        self._command_logger.debug(
            "Ignoring %s for %s item", type(command).__name__, kind.value
        )

    async def async_get_inputs(self, device_id: str) -> list[str]:
        """Return the selectable inputs of ``device_id``."""

        proxy = self._registry.lookup(device_id)
        if proxy is None:
            raise ConfigurationError(f"Unknown device uid '{device_id}'")
        async with self._device_lock(device_id):
            return await proxy.async_get_inputs()
