"""Registry mapping device identifiers to receiver proxies."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Protocol

from .state import DeviceState

_LOGGER = logging.getLogger(__name__)


class DeviceProxy(Protocol):
    """Operations the coordinator needs from a receiver proxy."""

    @property
    def host(self) -> str:
        """Return the host or address of the receiver."""

    async def async_get_state(self) -> DeviceState:
        """Fetch the current device state."""

    async def async_set_power(self, on: bool) -> None:
        """Switch the device on or off."""

    async def async_set_mute(self, mute: bool) -> None:
        """Mute or unmute the device."""

    async def async_set_volume_db(self, volume_db: float) -> None:
        """Set the volume in decibels."""

    async def async_set_input(self, name: str) -> None:
        """Select an input."""

    async def async_set_surround_program(self, name: str) -> None:
        """Select a surround program."""

    async def async_get_inputs(self) -> list[str]:
        """Return the selectable inputs."""


class DeviceRegistry:
    """Hold exactly one live proxy per device identifier."""

    def __init__(self) -> None:
        """Initialise an empty registry."""

        self._proxies: Mapping[str, DeviceProxy] = MappingProxyType({})

    def register(self, device_id: str, proxy: DeviceProxy) -> None:
        """Register ``proxy`` for ``device_id``, replacing any previous one."""

        proxies = dict(self._proxies)
        previous = proxies.get(device_id)
        proxies[device_id] = proxy
        self._proxies = MappingProxyType(proxies)
        if previous is not None and previous is not proxy:
            _LOGGER.debug("Replaced proxy for device %s: %r", device_id, proxy)

    def lookup(self, device_id: str) -> DeviceProxy | None:
        """Return the proxy registered for ``device_id``."""

        return self._proxies.get(device_id)

    def device_ids(self) -> list[str]:
        """Return the registered device identifiers."""

        return list(self._proxies)

    def snapshot(self) -> Mapping[str, DeviceProxy]:
        """Return a read-only view that later registrations do not change."""

        return self._proxies

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._proxies

    def __len__(self) -> int:
        return len(self._proxies)

    def __iter__(self) -> Iterator[str]:
        return iter(self._proxies)
