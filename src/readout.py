"""
Advanced Compass - Heading Smoothing, Correction and Logging
Correction & Readout Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Applies the true-north declination offset and formats headings in
degrees or NATO mils together with the 16-point cardinal label.
"""

import math
from dataclasses import dataclass
from typing import Optional

from angles import normalize, to_cardinal16

UNITS_DEGREES = "deg"
UNITS_MILS = "mil"
UNITS = (UNITS_DEGREES, UNITS_MILS)

MILS_PER_CIRCLE = 6400

LABEL_TRUE = "True"
LABEL_MAGNETIC = "Magnetic"
NO_ACCURACY = "—"


@dataclass(frozen=True)
class Readout:
    """Everything the readout panel shows for one heading."""
    heading: float
    text: str
    cardinal: str
    accuracy: str
    mode: str


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def effective_heading(raw: float, use_true_north: bool, declination: float) -> float:
    """Return *raw* corrected to true north when requested."""
    offset = declination if use_true_north else 0.0
    return normalize(raw + offset)


def to_mils(heading: float) -> int:
    """Convert degrees to NATO mils (6400 per circle)."""
    return _round_half_up(normalize(heading) / 360.0 * MILS_PER_CIRCLE)


def format_heading(heading: float, units: str = UNITS_DEGREES) -> str:
    """Format *heading* for display, e.g. ``"123°"`` or ``"2187 mil"``."""
    if units == UNITS_MILS:
        return f"{to_mils(heading)} mil"
    return f"{_round_half_up(normalize(heading))}°"


def mode_label(use_true_north: bool) -> str:
    return LABEL_TRUE if use_true_north else LABEL_MAGNETIC


def build_readout(raw: float, *, use_true_north: bool, declination: float,
                  units: str = UNITS_DEGREES,
                  accuracy_hint: Optional[str] = None) -> Readout:
    """Build the readout for a raw heading under the current settings.

    The cardinal label is derived from the corrected heading, and the
    mode label only reflects the true-north switch, not the input source.
    """
    heading = effective_heading(raw, use_true_north, declination)
    return Readout(
        heading=heading,
        text=format_heading(heading, units),
        cardinal=to_cardinal16(heading),
        accuracy=accuracy_hint or NO_ACCURACY,
        mode=mode_label(use_true_north),
    )
