"""Receiver state snapshots, attribute kinds and command payloads."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .conversion import db_to_percent_value


class AttributeKind(str, Enum):
    """Receiver attributes an item can be bound to."""

    POWER = "power"
    VOLUME_PERCENT = "volumePercent"
    VOLUME_DB = "volumeDb"
    MUTE = "mute"
    INPUT = "input"
    SURROUND_PROGRAM = "surroundProgram"

    @property
    def is_volume(self) -> bool:
        """Return True for the two volume representations."""

        return self in VOLUME_KINDS


VOLUME_KINDS = frozenset({AttributeKind.VOLUME_DB, AttributeKind.VOLUME_PERCENT})


@dataclass(frozen=True, slots=True)
class DeviceState:
    """Snapshot of the main zone status reported by one receiver.

    ``None`` marks an attribute the receiver did not report.
    """

    power: bool | None = None
    input: str | None = None
    surround_program: str | None = None
    volume_db: float | None = None
    mute: bool | None = None

    def value_for(self, kind: AttributeKind) -> Any | None:
        """Return the value published for ``kind`` or ``None`` when unknown."""

        if kind is AttributeKind.POWER:
            return self.power
        if kind is AttributeKind.MUTE:
            return self.mute
        if kind is AttributeKind.INPUT:
            return format_string(self.input)
        if kind is AttributeKind.SURROUND_PROGRAM:
            return format_string(self.surround_program)
        if self.volume_db is None:
            return None
        if kind is AttributeKind.VOLUME_DB:
            return self.volume_db
        return db_to_percent_value(self.volume_db)


def format_string(value: str | None) -> str | None:
    """Wrap free-text values in quotes for publication."""

    if value is None:
        return None
    return f'"{value}"'


def parse_string(value: str) -> str:
    """Strip whitespace and a surrounding pair of quotes."""

    text = value.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1]
    return text


@dataclass(frozen=True, slots=True)
class OnOffCommand:
    """Switch an attribute on or off."""

    on: bool


@dataclass(frozen=True, slots=True)
class StepCommand:
    """Nudge the volume up (``+1``) or down (``-1``)."""

    direction: int

    def __post_init__(self) -> None:
        """Reject directions other than up or down."""

        if self.direction not in (1, -1):
            raise ValueError(f"Invalid step direction {self.direction}")


@dataclass(frozen=True, slots=True)
class PercentCommand:
    """Set an absolute volume percentage."""

    value: int


@dataclass(frozen=True, slots=True)
class LiteralCommand:
    """Any other payload, carried as text."""

    text: str


Command = OnOffCommand | StepCommand | PercentCommand | LiteralCommand

_ON_OFF_MARKERS = {"ON": True, "OFF": False}
_STEP_MARKERS = {"INCREASE": 1, "UP": 1, "DECREASE": -1, "DOWN": -1}


def parse_command(payload: Any, kind: AttributeKind | None = None) -> Command:
    """Classify a raw command payload once, at the command boundary.

    A bare number follows the bound ``kind``: it is a percentage for
    ``volumePercent`` items and a decibel literal for ``volumeDb`` items.
    Without a kind, integers are percentages and floats are literals.
    """

    if isinstance(payload, (OnOffCommand, StepCommand, PercentCommand, LiteralCommand)):
        return payload
    if isinstance(payload, bool):
        return OnOffCommand(payload)
    if isinstance(payload, (int, float)):
        return _parse_number(payload, kind)
    text = str(payload)
    marker = text.strip().upper()
    if marker in _ON_OFF_MARKERS:
        return OnOffCommand(_ON_OFF_MARKERS[marker])
    if marker in _STEP_MARKERS:
        return StepCommand(_STEP_MARKERS[marker])
    return LiteralCommand(text)


def _parse_number(value: int | float, kind: AttributeKind | None) -> Command:
    if kind is AttributeKind.VOLUME_DB:
        return LiteralCommand(str(value))
    if kind is AttributeKind.VOLUME_PERCENT and math.isfinite(value):
        return PercentCommand(round(value))
    if isinstance(value, int):
        return PercentCommand(value)
    return LiteralCommand(repr(value))
