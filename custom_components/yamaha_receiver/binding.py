"""Item binding configuration and lookups."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

import voluptuous as vol

from .const import CONF_BINDING_TYPE, CONF_DEVICE_ID, DEFAULT_DEVICE_ID
from .errors import ConfigurationError
from .state import AttributeKind

_LOGGER = logging.getLogger(__name__)

_DEFAULT_CONTEXT = ""

BINDING_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEVICE_ID, default=DEFAULT_DEVICE_ID): vol.All(
            str, vol.Length(min=1)
        ),
        vol.Required(CONF_BINDING_TYPE): vol.Coerce(AttributeKind),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True, slots=True)
class ItemBinding:
    """Association between an item and one attribute of one device."""

    item_id: str
    device_id: str
    kind: AttributeKind


def parse_properties(config: str) -> dict[str, str]:
    """Split ``key=value`` pairs separated by commas."""

    props: dict[str, str] = {}
    for token in config.strip().split(","):
        key, sep, value = token.partition("=")
        if not sep:
            raise ConfigurationError(f"Malformed binding token {token.strip()!r}")
        props[key.strip()] = value.strip()
    return props


def parse_binding(item_id: str, config: str) -> ItemBinding:
    """Parse a binding string such as ``uid=living, bindingType=mute``."""

    try:
        props = BINDING_SCHEMA(parse_properties(config))
    except vol.Invalid as err:
        raise ConfigurationError(
            f"Invalid binding for item '{item_id}': {err}"
        ) from err
    return ItemBinding(
        item_id=item_id,
        device_id=props[CONF_DEVICE_ID],
        kind=props[CONF_BINDING_TYPE],
    )


class BindingConfigStore:
    """Forward and reverse lookups over the configured item bindings.

    Readers always see a complete snapshot; every write builds new
    mappings and swaps them in without yielding to the event loop.
    """

    def __init__(self, bindings: Iterable[ItemBinding] = ()) -> None:
        """Initialise the store with an optional set of bindings."""

        self._contexts: dict[str, dict[str, ItemBinding]] = {}
        self._items: Mapping[str, ItemBinding] = MappingProxyType({})
        self._by_device: Mapping[str, frozenset[ItemBinding]] = MappingProxyType({})
        if bindings:
            self.replace(bindings)

    def resolve_item(self, item_id: str) -> ItemBinding | None:
        """Return the binding for ``item_id``."""

        return self._items.get(item_id)

    def bindings_for_device(self, device_id: str) -> frozenset[ItemBinding]:
        """Return every binding that references ``device_id``."""

        return self._by_device.get(device_id, frozenset())

    def process_binding_configuration(
        self, context: str, item_id: str, config: str
    ) -> ItemBinding:
        """Parse and add the binding declared for ``item_id`` in ``context``."""

        binding = parse_binding(item_id, config)
        contexts = {name: dict(items) for name, items in self._contexts.items()}
        for items in contexts.values():
            items.pop(item_id, None)
        contexts.setdefault(context, {})[item_id] = binding
        self._publish(contexts)
        return binding

    def remove_configurations(self, context: str) -> None:
        """Drop every binding declared in ``context``."""

        if context not in self._contexts:
            return
        contexts = {
            name: dict(items)
            for name, items in self._contexts.items()
            if name != context
        }
        self._publish(contexts)

    def replace(self, bindings: Iterable[ItemBinding]) -> None:
        """Replace all bindings at once."""

        self._publish({_DEFAULT_CONTEXT: {b.item_id: b for b in bindings}})

    def __len__(self) -> int:
        return len(self._items)

    def _publish(self, contexts: dict[str, dict[str, ItemBinding]]) -> None:
        """Rebuild the lookup snapshots from ``contexts``."""

        items: dict[str, ItemBinding] = {}
        by_device: dict[str, set[ItemBinding]] = {}
        for bindings in contexts.values():
            for binding in bindings.values():
                items[binding.item_id] = binding
                by_device.setdefault(binding.device_id, set()).add(binding)

        self._contexts = contexts
        self._items = MappingProxyType(items)
        self._by_device = MappingProxyType(
            {device_id: frozenset(group) for device_id, group in by_device.items()}
        )
        _LOGGER.debug("Binding store holds %d items", len(items))
