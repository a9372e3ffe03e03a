"""
Advanced Compass - Heading Smoothing, Correction and Logging
Angle Arithmetic Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Pure helpers for compass headings: normalisation to [0, 360),
shortest signed rotation between two headings and the 16-point
cardinal label.  None of these functions raise for out-of-range or
non-finite input.
"""

import math

CARDINALS_16 = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)

SECTOR_WIDTH = 360.0 / len(CARDINALS_16)  # 22.5°


def normalize(heading) -> float:
    """Return *heading* normalised to the range [0, 360).

    Non-finite values (NaN, ±inf) and values that cannot be converted to
    a float normalise to ``0.0``.
    """
    try:
        value = float(heading)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    value = ((value % 360.0) + 360.0) % 360.0
    # Tiny negative inputs round up to exactly 360.0
    if value >= 360.0:
        return 0.0
    return value


def shortest_signed_diff(a: float, b: float) -> float:
    """Return the minimal signed rotation from *a* to *b* in (-180, 180].

    Positive values are clockwise.
    """
    diff = ((b - a + 540.0) % 360.0) - 180.0
    if diff <= -180.0:
        return 180.0
    return diff


def to_cardinal16(heading: float) -> str:
    """Return the 16-point compass label for *heading*.

    Each label covers a 22.5° sector centred on its compass point, so
    ``11.24°`` is still ``N`` and ``11.25°`` is ``NNE``.
    """
    index = int(math.floor(normalize(heading) / SECTOR_WIDTH + 0.5)) % 16
    return CARDINALS_16[index]
