"""
Advanced Compass - Heading Smoothing, Correction and Logging
Compass State Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

The single, explicitly owned session state.  It is created once at
startup, optionally hydrated from the persisted snapshot, and passed by
reference to every handler.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from event_log import DEFAULT_LOG_SIZE, HeadingSample
from readout import UNITS, UNITS_DEGREES

DEFAULT_TICK_DENSITY = 36


@dataclass
class Settings:
    """User settings edited through the settings dialog."""
    units: str = UNITS_DEGREES
    tick_density: int = DEFAULT_TICK_DENSITY
    log_size: int = DEFAULT_LOG_SIZE

    def __post_init__(self):
        if self.units not in UNITS:
            raise ValueError(f"Unknown units {self.units!r}")
        if self.tick_density < 1:
            raise ValueError("tick_density must be positive")
        if self.log_size < 1:
            raise ValueError("log_size must be positive")

    @classmethod
    def from_config(cls, config: dict) -> "Settings":
        """Build the initial settings from the ``defaults`` config group."""
        defaults = config.get("defaults", {})
        return cls(
            units=defaults.get("units", UNITS_DEGREES),
            tick_density=int(defaults.get("tick_density", DEFAULT_TICK_DENSITY)),
            log_size=int(defaults.get("log_size", DEFAULT_LOG_SIZE)),
        )


@dataclass
class CompassState:
    """Mutable compass session state.

    ``displayed_angle``, ``last_raw_heading``, the pointer and calibration
    flags and the throttle reference are session-only and never persisted.
    """
    settings: Settings = field(default_factory=Settings)
    use_true_north: bool = False
    declination: float = 0.0
    log: List[HeadingSample] = field(default_factory=list)

    displayed_angle: Optional[float] = None
    last_raw_heading: Optional[float] = None
    last_accuracy_hint: Optional[str] = None
    pointer_active: bool = False
    calibrating: bool = False
    last_sensor_at: Optional[datetime] = None
    status: str = "status.waiting"

    def __post_init__(self):
        if len(self.log) > self.settings.log_size:
            del self.log[self.settings.log_size:]

    @property
    def log_mode(self) -> str:
        """Mode label written with sensor-driven log entries."""
        return "true" if self.use_true_north else "magnetic"
