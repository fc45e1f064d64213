"""HTTP/XML proxy for a single Yamaha receiver."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape

import httpx

from .const import DEFAULT_REQUEST_TIMEOUT
from .conversion import clamp_db
from .errors import CommunicationError
from .state import DeviceState

_LOGGER = logging.getLogger(__name__)

_CONTROL_PATH = "/YamahaRemoteControl/ctrl"
_XML_HEADER = '<?xml version="1.0" encoding="utf-8"?>'
_BASIC_STATUS_PATH = "Main_Zone/Basic_Status"
_INPUT_ITEMS_PATH = "Main_Zone/Input/Input_Sel_Item"

# Bad host or port values fail inside the socket layer rather than in httpx.
_TRANSPORT_ERRORS = (
    httpx.HTTPError,
    httpx.InvalidURL,
    OSError,
    OverflowError,
    ValueError,
)


def _main_zone(cmd: str, body: str) -> str:
    """Wrap ``body`` in the main zone envelope for ``cmd``."""

    return f'{_XML_HEADER}<YAMAHA_AV cmd="{cmd}"><Main_Zone>{body}</Main_Zone></YAMAHA_AV>'


def _on_off(value: bool | None) -> bool | None:
    """Translate ``On``/``Off`` element text into a boolean."""

    if value is None:
        return None
    return value.strip().lower() == "on"


class YamahaReceiverProxy:
    """Perform one request/response exchange per operation.

    The proxy keeps no connection between calls; every operation opens a
    fresh HTTP client bounded by ``timeout`` seconds.
    """

    def __init__(
        self,
        host: str,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Bind the proxy to ``host`` with a request timeout."""

        self._host = host
        self._timeout = timeout
        self._transport = transport

    @property
    def host(self) -> str:
        """Return the host or address of the receiver."""

        return self._host

    @property
    def url(self) -> str:
        """Return the control endpoint URL."""

        return f"http://{self._host}{_CONTROL_PATH}"

    def __repr__(self) -> str:
        """Return a debug representation naming the host."""

        return f"{type(self).__name__}(host={self._host!r})"

    async def async_set_power(self, on: bool) -> None:
        """Switch the main zone on or to standby."""

        power = "On" if on else "Standby"
        await self._async_put(f"<Power_Control><Power>{power}</Power></Power_Control>")

    async def async_set_mute(self, mute: bool) -> None:
        """Mute or unmute the main zone."""

        value = "On" if mute else "Off"
        await self._async_put(f"<Volume><Mute>{value}</Mute></Volume>")

    async def async_set_volume_db(self, volume_db: float) -> None:
        """Set the main zone volume in decibels."""

        level = int(volume_db * 10)
        await self._async_put(
            "<Volume><Lvl>"
            f"<Val>{level}</Val><Exp>1</Exp><Unit>dB</Unit>"
            "</Lvl></Volume>"
        )

    async def async_set_input(self, name: str) -> None:
        """Select the input named ``name``."""

        await self._async_put(
            f"<Input><Input_Sel>{escape(name)}</Input_Sel></Input>"
        )

    async def async_set_surround_program(self, name: str) -> None:
        """Select the sound program named ``name``."""

        await self._async_put(
            "<Surround><Program_Sel><Current><Sound_Program>"
            f"{escape(name)}"
            "</Sound_Program></Current></Program_Sel></Surround>"
        )

    async def async_get_state(self) -> DeviceState:
        """Fetch the basic status of the main zone."""

        root = await self._async_request(
            _main_zone("GET", "<Basic_Status>GetParam</Basic_Status>")
        )
        status = root.find(_BASIC_STATUS_PATH)
        if status is None:
            raise CommunicationError(self._host, "response lacks Basic_Status")

        return DeviceState(
            power=_on_off(status.findtext("Power_Control/Power")),
            input=status.findtext("Input/Input_Sel"),
            surround_program=status.findtext(
                "Surround/Program_Sel/Current/Sound_Program"
            ),
            volume_db=self._parse_volume(status.find("Volume/Lvl")),
            mute=_on_off(status.findtext("Volume/Mute")),
        )

    async def async_get_inputs(self) -> list[str]:
        """Return the names of inputs that can be selected."""

        root = await self._async_request(
            _main_zone("GET", "<Input><Input_Sel_Item>GetParam</Input_Sel_Item></Input>")
        )
        items = root.find(_INPUT_ITEMS_PATH)
        if items is None:
            raise CommunicationError(self._host, "response lacks Input_Sel_Item")

        names: list[str] = []
        for item in items:
            name = item.findtext("Param")
            writable = "W" in (item.findtext("RW") or "")
            if name and writable:
                names.append(name)
        return names

    def _parse_volume(self, level: ET.Element | None) -> float | None:
        """Convert a ``Lvl`` element into decibels."""

        if level is None:
            return None
        raw = level.findtext("Val")
        if raw is None:
            return None
        try:
            exponent = int(level.findtext("Exp") or 1)
            return clamp_db(int(raw) / 10**exponent)
        except ValueError as err:
            raise CommunicationError(
                self._host, f"invalid volume level {raw!r}"
            ) from err

    async def _async_put(self, body: str) -> None:
        """Send a write request; the device reply is only checked for errors."""

        await self._async_request(_main_zone("PUT", body))

    async def _async_request(self, message: str) -> ET.Element:
        """POST ``message`` and parse the XML reply."""

        _LOGGER.debug("Sending to %s: %s", self._host, message)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.url,
                    content=message.encode("utf-8"),
                    headers={"Content-Type": "text/xml; charset=utf-8"},
                )
                response.raise_for_status()
        except _TRANSPORT_ERRORS as err:
            raise CommunicationError(self._host, f"request failed: {err}") from err

        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as err:
            raise CommunicationError(self._host, "could not parse response") from err

        code = root.get("RC")
        if code not in (None, "0"):
            raise CommunicationError(self._host, f"receiver returned RC={code}")
        return root
