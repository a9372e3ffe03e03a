"""
Advanced Compass - Heading Smoothing, Correction and Logging
Persistence Snapshot Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Stores the minimal compass state (settings, declination, true-north
flag and the bounded log) in a JSON key-value file.  Persistence is
best-effort: write failures are logged and swallowed, and bad data on
load leaves the defaults in place.
"""

import json
import logging
import math
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional

from compass_state import CompassState
from event_log import HeadingSample
from readout import UNITS

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "advanced_compass_v1"


def snapshot_of(state: CompassState) -> Dict:
    """Return the persisted projection of *state*."""
    settings = state.settings
    return {
        "settings": {
            "units": settings.units,
            "tickDensity": settings.tick_density,
            "logSize": settings.log_size,
        },
        "declination": state.declination,
        "useTrueNorth": state.use_true_north,
        "log": [sample.to_dict() for sample in state.log[:settings.log_size]],
    }


def _positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int) and value > 0:
        return value
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return None


def hydrate(state: CompassState, snapshot: Dict) -> None:
    """Apply a loaded *snapshot* to *state*, field by field.

    Mistyped fields are skipped individually, so one bad value never
    discards the rest of the snapshot.
    """
    if not isinstance(snapshot, dict):
        logger.warning("Persisted state is not an object – ignoring")
        return

    settings = snapshot.get("settings")
    if isinstance(settings, dict):
        units = settings.get("units")
        if units in UNITS:
            state.settings.units = units
        elif "units" in settings:
            logger.warning("Ignoring persisted units %r", units)

        for key, attr in (("tickDensity", "tick_density"), ("logSize", "log_size")):
            if key not in settings:
                continue
            value = _positive_int(settings[key])
            if value is None:
                logger.warning("Ignoring persisted %s %r", key, settings[key])
            else:
                setattr(state.settings, attr, value)

    declination = snapshot.get("declination")
    if (isinstance(declination, (int, float)) and not isinstance(declination, bool)
            and math.isfinite(declination)):
        state.declination = float(declination)
    elif "declination" in snapshot:
        logger.warning("Ignoring persisted declination %r", declination)

    use_true_north = snapshot.get("useTrueNorth")
    if isinstance(use_true_north, bool):
        state.use_true_north = use_true_north
    elif "useTrueNorth" in snapshot:
        logger.warning("Ignoring persisted useTrueNorth %r", use_true_north)

    entries = snapshot.get("log")
    if isinstance(entries, list):
        log = []
        for raw in entries[:state.settings.log_size]:
            try:
                log.append(HeadingSample.from_dict(raw))
            except ValueError as exc:
                logger.warning("Skipping persisted log entry: %s", exc)
        state.log[:] = log
    elif "log" in snapshot:
        logger.warning("Ignoring persisted log of type %s", type(entries).__name__)

    # The log bound may have shrunk with the loaded settings
    if len(state.log) > state.settings.log_size:
        del state.log[state.settings.log_size:]


class SnapshotStore:
    """JSON file acting as a durable key-value store.

    Args:
        path: Location of the JSON file.  Other keys found in the file are
            preserved when saving.
        key: Storage identifier the compass snapshot lives under.
    """

    def __init__(self, path, key: str = DEFAULT_STORAGE_KEY):
        self.path = Path(path)
        self.key = key

    def _read_all(self) -> Dict:
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("storage file does not contain an object")
        return data

    def save(self, state: CompassState) -> bool:
        """Persist *state*; returns ``False`` (after a warning) on failure."""
        try:
            try:
                data = self._read_all()
            except (OSError, ValueError):
                data = {}
            data[self.key] = snapshot_of(state)

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".compass-", suffix=".json", dir=str(self.path.parent),
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            logger.debug("State saved to %s (%d log entries)",
                         self.path, len(state.log))
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save state to %s: %s", self.path, exc)
            return False

    def load(self) -> Optional[Dict]:
        """Return the stored snapshot, or ``None`` when absent or unreadable."""
        try:
            data = self._read_all()
        except FileNotFoundError:
            logger.info("No saved state at %s – using defaults", self.path)
            return None
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load state from %s: %s", self.path, exc)
            return None

        snapshot = data.get(self.key)
        if snapshot is None:
            return None
        if not isinstance(snapshot, dict):
            logger.warning("Saved state under %r is malformed – using defaults",
                           self.key)
            return None
        return snapshot

    def load_into(self, state: CompassState) -> bool:
        """Load and apply the snapshot; returns ``True`` when one was applied."""
        snapshot = self.load()
        if snapshot is None:
            return False
        hydrate(state, snapshot)
        logger.info("Restored state: %d log entries, declination %.2f°, %s north",
                    len(state.log), state.declination,
                    "true" if state.use_true_north else "magnetic")
        return True
