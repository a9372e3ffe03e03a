"""
Advanced Compass - Heading Smoothing, Correction and Logging
Event Reducer Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Turns one input event into a state change plus a list of effects.
``reduce`` only touches the :class:`CompassState` it is given and never
performs I/O itself; the controller executes the returned effects
(persist, render, export) in order after each event.  Replaying the same
events with the same timestamps from the same state reproduces the same
needle and log trajectory.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from angles import normalize
from compass_state import CompassState, DEFAULT_TICK_DENSITY
from event_log import (
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_INTERVAL_MS,
    DEFAULT_LOG_SIZE,
    HeadingLog,
    HeadingSample,
)
from heading_source import (
    DEFAULT_THROTTLE_MS,
    MODE_SIMULATED,
    PointerDragReading,
    Reading,
    adapt,
    within_throttle_window,
)
from readout import UNITS, UNITS_DEGREES, Readout, build_readout
from smoother import DEFAULT_SMOOTHING, smooth_step

logger = logging.getLogger(__name__)

CALIBRATION_STEP_DEG = 18.0
CALIBRATION_STEP_MS = 30.0


@dataclass(frozen=True)
class PipelineConfig:
    """Tuning constants of the heading pipeline (``compass`` config group)."""
    smoothing: float = DEFAULT_SMOOTHING
    throttle_ms: float = DEFAULT_THROTTLE_MS
    log_change_threshold: float = DEFAULT_CHANGE_THRESHOLD
    log_interval_ms: float = DEFAULT_INTERVAL_MS

    def __post_init__(self):
        if not 0.0 < self.smoothing < 1.0:
            raise ValueError(f"smoothing must be in (0, 1), got {self.smoothing!r}")
        if self.throttle_ms < 0 or self.log_interval_ms < 0 or self.log_change_threshold < 0:
            raise ValueError("throttle and log thresholds must not be negative")

    @classmethod
    def from_config(cls, config: dict) -> "PipelineConfig":
        compass = config.get("compass", {})
        return cls(
            smoothing=float(compass.get("smoothing", DEFAULT_SMOOTHING)),
            throttle_ms=float(compass.get("throttle_ms", DEFAULT_THROTTLE_MS)),
            log_change_threshold=float(
                compass.get("log_change_threshold", DEFAULT_CHANGE_THRESHOLD)
            ),
            log_interval_ms=float(
                compass.get("log_interval_ms", DEFAULT_INTERVAL_MS)
            ),
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SensorEvent:
    """An orientation sensor update; ``reading`` is ``None`` when unusable."""
    reading: Optional[Reading]
    at: datetime


@dataclass(frozen=True)
class PointerDown:
    at: datetime


@dataclass(frozen=True)
class PointerMove:
    reading: PointerDragReading
    at: datetime
    buttons_held: bool = False


@dataclass(frozen=True)
class PointerUp:
    at: datetime


@dataclass(frozen=True)
class PointerDoubleClick:
    at: datetime


@dataclass(frozen=True)
class SettingsSubmitted:
    """Raw form values; unparsable numbers fall back to the defaults."""
    units: str
    tick_density: object
    log_size: object


@dataclass(frozen=True)
class DeclinationSubmitted:
    text: str


@dataclass(frozen=True)
class TrueNorthToggled:
    enabled: bool


@dataclass(frozen=True)
class ClearLog:
    pass


@dataclass(frozen=True)
class PinLogEntry:
    index: int


@dataclass(frozen=True)
class ExportLog:
    at: datetime


@dataclass(frozen=True)
class StartCalibration:
    pass


@dataclass(frozen=True)
class CalibrationStep:
    """One frame of the calibration sweep; the needle is drawn at *angle*."""
    angle: float


@dataclass(frozen=True)
class CalibrationFinished:
    pass


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class PersistSnapshot:
    pass


@dataclass(frozen=True)
class RenderNeedle:
    angle: float


@dataclass(frozen=True)
class RenderReadout:
    readout: Readout


@dataclass(frozen=True)
class RenderLog:
    entries: Tuple[HeadingSample, ...]


@dataclass(frozen=True)
class RenderTicks:
    density: int


@dataclass(frozen=True)
class SetStatus:
    """Status line update; ``key`` is a localisation key."""
    key: str
    params: Dict = field(default_factory=dict)


@dataclass(frozen=True)
class DeclinationRejected:
    text: str


@dataclass(frozen=True)
class ExportCsv:
    content: str
    at: datetime


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _to_int(value, default: int) -> int:
    """Parse the leading integer of a form value (``"12.5"`` gives 12).

    Returns *default* when no digits lead the value or the number is not
    positive.
    """
    match = _LEADING_INT.match(str(value))
    if match is None:
        return default
    number = int(match.group(1))
    return number if number > 0 else default


def parse_declination(text) -> Optional[float]:
    """Return *text* as a finite float, or ``None`` when it is not one."""
    if isinstance(text, bool):
        return None
    try:
        value = float(str(text).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return value


def _readout(state: CompassState) -> RenderReadout:
    return RenderReadout(build_readout(
        state.last_raw_heading,
        use_true_north=state.use_true_north,
        declination=state.declination,
        units=state.settings.units,
        accuracy_hint=state.last_accuracy_hint,
    ))


def _log_effects(state: CompassState) -> List:
    return [RenderLog(tuple(state.log)), PersistSnapshot()]


def _apply_heading(state: CompassState, heading: float, hint: Optional[str],
                   config: PipelineConfig) -> List:
    """Store a new raw heading, advance the needle and refresh the readout."""
    state.last_raw_heading = heading
    state.last_accuracy_hint = hint
    state.displayed_angle = smooth_step(state.displayed_angle, heading,
                                        config.smoothing)
    if state.calibrating:
        return [_readout(state)]
    return [RenderNeedle(state.displayed_angle), _readout(state)]


def _status(state: CompassState, key: str, **params) -> SetStatus:
    state.status = key
    return SetStatus(key, params)


def calibration_sweep(step: float = CALIBRATION_STEP_DEG) -> List[float]:
    """Needle angles of one calibration sweep.

    The sweep advances by *step* degrees per frame and stops on the first
    angle past a full turn, so the last frame is beyond 360°.
    """
    if step <= 0:
        raise ValueError(f"calibration step must be positive, got {step!r}")
    return [step * k for k in range(1, int(360.0 // step) + 2)]


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------
def reduce(state: CompassState, event, config: PipelineConfig = PipelineConfig()) -> List:
    """Apply *event* to *state* and return the effects to execute.

    Raises:
        TypeError: If *event* is not a known event type.
    """
    log = HeadingLog(state, config.log_change_threshold, config.log_interval_ms)

    if isinstance(event, SensorEvent):
        if event.reading is None:
            return []
        if within_throttle_window(state.last_sensor_at, event.at, config.throttle_ms):
            return []
        state.last_sensor_at = event.at
        observation = adapt(event.reading)
        effects = _apply_heading(state, observation.heading,
                                 observation.accuracy_hint, config)
        if state.status != "status.sensor" and not state.calibrating:
            effects.append(_status(state, "status.sensor"))
        if log.should_log(observation.heading, event.at):
            log.record(observation.heading, state.log_mode, event.at)
            effects.extend(_log_effects(state))
        return effects

    if isinstance(event, PointerDown):
        state.pointer_active = True
        return []

    if isinstance(event, PointerMove):
        if not state.pointer_active and not event.buttons_held:
            return []
        observation = adapt(event.reading)
        effects = _apply_heading(state, observation.heading,
                                 observation.accuracy_hint, config)
        if state.status != "status.simulated" and not state.calibrating:
            effects.append(_status(state, "status.simulated"))
        return effects

    if isinstance(event, (PointerUp, PointerDoubleClick)):
        if isinstance(event, PointerUp):
            state.pointer_active = False
        if state.last_raw_heading is None:
            return []
        log.record(state.last_raw_heading, MODE_SIMULATED, event.at)
        return _log_effects(state)

    if isinstance(event, SettingsSubmitted):
        settings = state.settings
        settings.units = event.units if event.units in UNITS else UNITS_DEGREES
        settings.tick_density = _to_int(event.tick_density, DEFAULT_TICK_DENSITY)
        settings.log_size = _to_int(event.log_size, DEFAULT_LOG_SIZE)
        log.truncate()
        logger.info("Settings updated: units=%s, ticks=%d, log size=%d",
                    settings.units, settings.tick_density, settings.log_size)
        effects = [RenderTicks(settings.tick_density), RenderLog(tuple(state.log))]
        if state.last_raw_heading is not None:
            effects.append(_readout(state))
        effects.append(PersistSnapshot())
        effects.append(_status(state, "status.settings_saved"))
        return effects

    if isinstance(event, DeclinationSubmitted):
        value = parse_declination(event.text)
        if value is None:
            logger.info("Rejected declination %r", event.text)
            return [DeclinationRejected(str(event.text))]
        state.declination = value
        effects = [PersistSnapshot(), _status(state, "status.declination_set", value=value)]
        if state.last_raw_heading is not None:
            effects.append(_readout(state))
        return effects

    if isinstance(event, TrueNorthToggled):
        state.use_true_north = bool(event.enabled)
        key = "status.true_north" if state.use_true_north else "status.magnetic_north"
        effects = [PersistSnapshot(), _status(state, key)]
        if state.last_raw_heading is not None:
            effects.append(_readout(state))
        return effects

    if isinstance(event, ClearLog):
        log.clear()
        return _log_effects(state) + [_status(state, "status.log_cleared")]

    if isinstance(event, PinLogEntry):
        try:
            sample = log.pin(event.index)
        except IndexError:
            logger.debug("Ignoring pin of missing log entry %d", event.index)
            return []
        state.displayed_angle = smooth_step(state.displayed_angle, sample.heading,
                                            config.smoothing)
        effects = [] if state.calibrating else [RenderNeedle(state.displayed_angle)]
        effects.append(_status(state, "status.pinned", heading=sample.heading,
                               cardinal=sample.cardinal))
        return effects

    if isinstance(event, ExportLog):
        if not state.log:
            return [_status(state, "status.export_empty")]
        return [ExportCsv(log.to_csv(), event.at)]

    if isinstance(event, StartCalibration):
        if state.calibrating:
            return []
        state.calibrating = True
        logger.info("Calibration sweep started")
        return [_status(state, "status.calibrating")]

    if isinstance(event, CalibrationStep):
        if not state.calibrating:
            return []
        return [RenderNeedle(normalize(event.angle))]

    if isinstance(event, CalibrationFinished):
        if not state.calibrating:
            return []
        state.calibrating = False
        effects = []
        if state.displayed_angle is not None:
            effects.append(RenderNeedle(state.displayed_angle))
        effects.append(_status(state, "status.calibration_done"))
        return effects

    raise TypeError(f"Unsupported event type: {type(event).__name__}")
