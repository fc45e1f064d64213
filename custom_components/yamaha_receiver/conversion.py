"""Volume conversion between receiver decibels and item percentages."""

from __future__ import annotations

from .const import VOLUME_DB_MAX, VOLUME_DB_MIN

_DB_RANGE = VOLUME_DB_MAX - VOLUME_DB_MIN


def clamp_db(db: float) -> float:
    """Clamp ``db`` into the range supported by the receiver."""

    return min(max(float(db), VOLUME_DB_MIN), VOLUME_DB_MAX)


def db_to_percent(db: float) -> float:
    """Map a decibel value onto the 0-100 percent scale."""

    return 100 * ((clamp_db(db) - VOLUME_DB_MIN) / _DB_RANGE)


def db_to_percent_value(db: float) -> int:
    """Return the integer percentage published for ``db``."""

    return round(db_to_percent(db))


def percent_to_db(percent: int) -> int:
    """Map a percentage onto whole decibels.

    The result is truncated toward zero rather than rounded; receivers
    configured by older releases expect exactly these steps.
    """

    fraction = min(max(int(percent), 0), 100) * 0.01
    return int(fraction * _DB_RANGE + VOLUME_DB_MIN)
