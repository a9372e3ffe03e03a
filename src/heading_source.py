"""
Advanced Compass - Heading Smoothing, Correction and Logging
Heading Source Adapter Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Normalises the three kinds of heading input into one observation:

* ``PlatformCompassReading``   – a sensor that reports a compass heading
  directly (plus an optional accuracy in degrees).
* ``GenericOrientationReading`` – a rotation angle around the vertical
  axis, used as heading on a best-effort basis.
* ``PointerDragReading``        – pointer coordinates relative to the
  on-screen compass centre (desktop simulation).

Raw sensor events arrive as loosely shaped mappings; they are converted
to the tagged readings by :func:`reading_from_event` at the boundary.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional, Union

import numpy as np

from angles import normalize

logger = logging.getLogger(__name__)

MODE_MAGNETIC = "magnetic"
MODE_TRUE = "true"
MODE_SIMULATED = "simulated"
SOURCE_MODES = (MODE_MAGNETIC, MODE_TRUE, MODE_SIMULATED)

HINT_ABSOLUTE = "absolute"
HINT_SIMULATED = "simulated"

DEFAULT_THROTTLE_MS = 15.0

# Field names accepted in raw event mappings, in priority order
_COMPASS_HEADING_KEYS = ("compass_heading", "webkitCompassHeading")
_COMPASS_ACCURACY_KEYS = ("compass_accuracy", "webkitCompassAccuracy")


@dataclass(frozen=True)
class PlatformCompassReading:
    """A direct compass heading from the platform."""
    heading: float
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class GenericOrientationReading:
    """A device-frame rotation angle around the vertical axis."""
    alpha: float
    absolute: bool = False


@dataclass(frozen=True)
class PointerDragReading:
    """Pointer position and the compass widget centre in screen units."""
    x: float
    y: float
    center_x: float
    center_y: float


Reading = Union[PlatformCompassReading, GenericOrientationReading, PointerDragReading]


@dataclass(frozen=True)
class HeadingObservation:
    """Normalised output of the adapter."""
    heading: float
    accuracy_hint: Optional[str]
    source_mode: str


def pointer_heading(x: float, y: float, center_x: float, center_y: float) -> float:
    """Return the heading of point (*x*, *y*) seen from the centre.

    Screen coordinates grow downwards, so "up" is 0° and the angle
    increases clockwise.
    """
    dx = x - center_x
    dy = y - center_y
    return normalize(float(np.degrees(np.arctan2(dx, -dy))))


def adapt(reading: Reading) -> HeadingObservation:
    """Convert a tagged *reading* into a :class:`HeadingObservation`.

    Raises:
        TypeError: If *reading* is not one of the known reading types.
    """
    if isinstance(reading, PlatformCompassReading):
        hint = None
        if reading.accuracy is not None:
            hint = f"{reading.accuracy:g}°"
        return HeadingObservation(normalize(reading.heading), hint, MODE_MAGNETIC)

    if isinstance(reading, GenericOrientationReading):
        hint = HINT_ABSOLUTE if reading.absolute else None
        return HeadingObservation(normalize(reading.alpha), hint, MODE_MAGNETIC)

    if isinstance(reading, PointerDragReading):
        heading = pointer_heading(reading.x, reading.y,
                                  reading.center_x, reading.center_y)
        return HeadingObservation(heading, HINT_SIMULATED, MODE_SIMULATED)

    raise TypeError(f"Unsupported reading type: {type(reading).__name__}")


def _as_number(value) -> Optional[float]:
    """Return *value* as a finite float, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _first_present(event: Mapping, keys) -> object:
    for key in keys:
        if event.get(key) is not None:
            return event[key]
    return None


def reading_from_event(event: Mapping) -> Optional[Reading]:
    """Build a tagged reading from a raw orientation event mapping.

    A direct compass heading wins over the generic ``alpha`` angle.
    Returns ``None`` when the event carries no usable heading; such
    events are discarded by the caller without touching any state.
    """
    heading = _as_number(_first_present(event, _COMPASS_HEADING_KEYS))
    if heading is not None:
        accuracy = _as_number(_first_present(event, _COMPASS_ACCURACY_KEYS))
        return PlatformCompassReading(heading=heading, accuracy=accuracy)

    alpha = _as_number(event.get("alpha"))
    if alpha is not None:
        return GenericOrientationReading(
            alpha=alpha, absolute=event.get("absolute") is True,
        )

    logger.debug("Discarding orientation event without heading: %r", event)
    return None


def within_throttle_window(last: Optional[datetime], now: datetime,
                           interval_ms: float = DEFAULT_THROTTLE_MS) -> bool:
    """Return ``True`` when *now* is still inside the window opened at *last*.

    Sensor events inside the window are dropped.  The caller injects the
    event time so replays are deterministic.  A clock that stepped backwards
    (negative elapsed time) reopens the window.
    """
    if last is None:
        return False
    elapsed_ms = (now - last).total_seconds() * 1000.0
    return 0.0 <= elapsed_ms < interval_ms
