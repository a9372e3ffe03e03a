"""
Advanced Compass - Heading Smoothing, Correction and Logging
Replay Sensor Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Replays a recorded orientation session (loaded via :mod:`data_loader`)
as if it came from a live sensor, preserving the recorded spacing of
events scaled by a playback speed.
"""

import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ReplaySensor:
    """Paced playback of recorded readings.

    Parameters
    ----------
    data : list[dict]
        Records as returned by :func:`data_loader.load_recording`.
    speed : float, optional
        Playback speed multiplier (default ``1.0``).  Use values > 1
        for accelerated replay.
    sleep : callable, optional
        Sleep function, replaceable in tests.
    """

    def __init__(self, data: List[Dict], speed: float = 1.0,
                 sleep: Callable[[float], None] = time.sleep):
        if not data:
            raise ValueError("Replay data must not be empty")

        self.data = data
        self.speed = max(speed, 0.01)
        self._sleep = sleep
        self._stopped = False
        self._duration = (
            data[-1]["timestamp"] - data[0]["timestamp"]
        ).total_seconds()

        logger.info(
            "ReplaySensor ready – %d records, %.0fs duration, speed=%.1fx",
            len(data), self._duration, self.speed,
        )

    @property
    def duration_s(self) -> float:
        """Recorded session length in seconds (before speed scaling)."""
        return self._duration

    def stop(self) -> None:
        """Stop an ongoing :meth:`play` after the current record."""
        self._stopped = True

    def shifted(self, start) -> List[Tuple]:
        """Return ``(timestamp, reading)`` pairs re-based to begin at *start*.

        Recorded spacing is compressed by the playback speed so that the
        timestamps seen by the pipeline match the pacing of :meth:`play`.
        """
        origin = self.data[0]["timestamp"]
        pairs = []
        for record in self.data:
            offset = (record["timestamp"] - origin).total_seconds() / self.speed
            pairs.append((start + timedelta(seconds=offset), record["reading"]))
        return pairs

    def play(self, start) -> Iterator[Tuple]:
        """Yield ``(timestamp, reading)`` pairs, sleeping between them."""
        self._stopped = False
        previous: Optional[object] = None
        for moment, reading in self.shifted(start):
            if self._stopped:
                logger.info("Replay stopped")
                return
            if previous is not None:
                gap = (moment - previous).total_seconds()
                if gap > 0:
                    self._sleep(gap)
            previous = moment
            yield moment, reading
        logger.info("Replay finished")
