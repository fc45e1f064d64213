"""Integration entry point for the Yamaha receiver component."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .binding import BindingConfigStore, ItemBinding
from .config import ServiceConfig, load_config_file, parse_service_config
from .const import DOMAIN
from .coordinator import EventSink, PollResult, YamahaReceiverCoordinator
from .errors import CommunicationError, ConfigurationError, YamahaReceiverError
from .proxy import YamahaReceiverProxy
from .registry import DeviceProxy, DeviceRegistry
from .state import AttributeKind, DeviceState

__all__ = [
    "DOMAIN",
    "AttributeKind",
    "CommunicationError",
    "ConfigurationError",
    "DeviceState",
    "ItemBinding",
    "PollResult",
    "ServiceConfig",
    "YamahaReceiverError",
    "YamahaReceiverService",
    "async_reload",
    "async_setup",
    "async_unload",
    "load_config_file",
]

_LOGGER = logging.getLogger(__name__)

ProxyFactory = Callable[[str, float], DeviceProxy]


def _default_proxy_factory(host: str, timeout: float) -> DeviceProxy:
    """Create the HTTP proxy used for a configured receiver."""

    return YamahaReceiverProxy(host, timeout=timeout)


@dataclass(slots=True)
class YamahaReceiverService:
    """Runtime objects owned by one configured service."""

    config: ServiceConfig
    registry: DeviceRegistry
    bindings: BindingConfigStore
    coordinator: YamahaReceiverCoordinator
    proxy_factory: ProxyFactory


def _coerce_config(config: ServiceConfig | Mapping[str, Any]) -> ServiceConfig:
    """Accept either a validated config or the flat settings mapping."""

    if isinstance(config, ServiceConfig):
        return config
    return parse_service_config(config)


def _build_proxies(
    config: ServiceConfig, factory: ProxyFactory
) -> dict[str, DeviceProxy]:
    """Create one proxy per configured device."""

    return {
        device_id: factory(host, config.request_timeout)
        for device_id, host in config.devices.items()
    }


async def async_setup(
    config: ServiceConfig | Mapping[str, Any],
    bindings: Iterable[ItemBinding],
    sink: EventSink,
    *,
    start: bool = True,
    proxy_factory: ProxyFactory | None = None,
) -> YamahaReceiverService:
    """Build the registry, binding store and coordinator and start polling."""

    service_config = _coerce_config(config)
    factory = proxy_factory or _default_proxy_factory

    registry = DeviceRegistry()
    for device_id, proxy in _build_proxies(service_config, factory).items():
        registry.register(device_id, proxy)
    store = BindingConfigStore(bindings)

    coordinator = YamahaReceiverCoordinator(
        registry=registry,
        bindings=store,
        sink=sink,
        refresh_interval=service_config.refresh_interval,
    )
    if not service_config.devices:
        _LOGGER.warning("No receivers configured for %s", DOMAIN)
    if start:
        await coordinator.async_start()

    _LOGGER.debug(
        "Set up %s with %d receivers and %d items",
        DOMAIN,
        len(registry),
        len(store),
    )
    return YamahaReceiverService(
        config=service_config,
        registry=registry,
        bindings=store,
        coordinator=coordinator,
        proxy_factory=factory,
    )


async def async_reload(
    service: YamahaReceiverService,
    config: ServiceConfig | Mapping[str, Any],
    bindings: Iterable[ItemBinding],
) -> None:
    """Replace proxies and bindings without overlapping a poll cycle."""

    service_config = _coerce_config(config)
    await service.coordinator.async_reconfigure(
        _build_proxies(service_config, service.proxy_factory),
        list(bindings),
        refresh_interval=service_config.refresh_interval,
    )
    service.config = service_config


async def async_unload(service: YamahaReceiverService) -> None:
    """Stop polling for ``service``."""

    await service.coordinator.async_stop()
