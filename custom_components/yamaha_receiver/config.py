"""Service configuration parsing and loading."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

import voluptuous as vol
import yaml
from pydantic import BaseModel, Field, ValidationError

from .binding import ItemBinding, parse_binding
from .const import (
    CONF_HOST,
    CONF_REFRESH,
    CONF_TIMEOUT,
    DEFAULT_DEVICE_ID,
    DEFAULT_REFRESH_INTERVAL_MS,
    DEFAULT_REQUEST_TIMEOUT,
)
from .errors import ConfigurationError

_LOGGER = logging.getLogger(__name__)

_HOST_KEY_PATTERN = rf"^([^.]+\.)?{CONF_HOST}$"

SERVICE_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_REFRESH): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(CONF_TIMEOUT): vol.All(vol.Coerce(float), vol.Range(min=0.1)),
        vol.Match(_HOST_KEY_PATTERN): vol.All(str, str.strip, vol.Length(min=1)),
    },
    extra=vol.REMOVE_EXTRA,
)


class ServiceConfig(BaseModel):
    """Validated settings for the polling service."""

    refresh_interval_ms: int = Field(default=DEFAULT_REFRESH_INTERVAL_MS, gt=0)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    devices: dict[str, str] = Field(default_factory=dict)

    @property
    def refresh_interval(self) -> timedelta:
        """Return the poll interval as a timedelta."""

        return timedelta(milliseconds=self.refresh_interval_ms)


def parse_service_config(config: Mapping[str, Any]) -> ServiceConfig:
    """Build a ``ServiceConfig`` from flat ``<uid>.host`` style settings.

    A ``host`` key without a device prefix configures the ``default``
    device.
    """

    try:
        validated = SERVICE_SCHEMA(dict(config))
    except vol.Invalid as err:
        raise ConfigurationError(f"Invalid service configuration: {err}") from err

    devices: dict[str, str] = {}
    for key, value in validated.items():
        if not key.endswith(CONF_HOST):
            continue
        device_id, sep, _ = key.partition(".")
        devices[device_id if sep else DEFAULT_DEVICE_ID] = value

    settings: dict[str, Any] = {"devices": devices}
    if CONF_REFRESH in validated:
        settings["refresh_interval_ms"] = validated[CONF_REFRESH]
    if CONF_TIMEOUT in validated:
        settings["request_timeout"] = validated[CONF_TIMEOUT]

    try:
        return ServiceConfig(**settings)
    except ValidationError as err:
        raise ConfigurationError(f"Invalid service configuration: {err}") from err


def parse_item_bindings(items: Mapping[str, str]) -> list[ItemBinding]:
    """Parse an ``item -> binding string`` mapping."""

    return [parse_binding(item_id, str(config)) for item_id, config in items.items()]


def load_config_file(path: Path | str) -> tuple[ServiceConfig, list[ItemBinding]]:
    """Load service settings and item bindings from a YAML file."""

    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as fp:
            document = yaml.safe_load(fp) or {}
    except (OSError, yaml.YAMLError) as err:
        raise ConfigurationError(f"Cannot read {config_path}: {err}") from err

    if not isinstance(document, Mapping):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    service = document.get("service") or {}
    items = document.get("items") or {}
    if not isinstance(service, Mapping) or not isinstance(items, Mapping):
        raise ConfigurationError(
            f"{config_path}: 'service' and 'items' must be mappings"
        )

    service_config = parse_service_config(
        {str(key): value for key, value in service.items()}
    )
    bindings = parse_item_bindings({str(k): v for k, v in items.items()})
    _LOGGER.debug(
        "Loaded %d devices and %d items from %s",
        len(service_config.devices),
        len(bindings),
        config_path,
    )
    return service_config, bindings
