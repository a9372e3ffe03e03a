"""
Advanced Compass - Heading Smoothing, Correction and Logging
Bounded Event Log Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Newest-first, size-bounded history of heading observations.  The
logging policy keeps the log to meaningful changes (more than a few
degrees) while still writing a heartbeat entry every few seconds when
the heading is stationary.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from angles import normalize, shortest_signed_diff, to_cardinal16
from heading_source import SOURCE_MODES

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_THRESHOLD = 3.0      # degrees
DEFAULT_INTERVAL_MS = 3000.0        # heartbeat interval
DEFAULT_LOG_SIZE = 100

CSV_HEADER = "timestamp,heading,cardinal,mode"


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------
def utc_now() -> datetime:
    """Return the current UTC time truncated to whole milliseconds."""
    return truncate_ms(datetime.now(timezone.utc))


def truncate_ms(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)


def format_timestamp(moment: datetime) -> str:
    """Return an ISO-8601 UTC string such as ``2026-01-02T03:04:05.678Z``."""
    moment = truncate_ms(moment).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If *value* is not a valid ISO-8601 string.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return truncate_ms(datetime.fromisoformat(text))


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class HeadingSample:
    """One logged heading observation."""
    heading: float
    timestamp: datetime
    cardinal: str
    source_mode: str

    @classmethod
    def create(cls, heading: float, source_mode: str,
               timestamp: datetime) -> "HeadingSample":
        """Build a sample with a normalised heading and derived cardinal."""
        if source_mode not in SOURCE_MODES:
            raise ValueError(f"Unknown source mode: {source_mode!r}")
        value = round(normalize(heading), 2)
        # Rounding 359.996 gives 360.0
        if value >= 360.0:
            value = 0.0
        return cls(
            heading=value,
            timestamp=truncate_ms(timestamp),
            cardinal=to_cardinal16(value),
            source_mode=source_mode,
        )

    def to_dict(self) -> Dict:
        return {
            "ts": format_timestamp(self.timestamp),
            "heading": self.heading,
            "cardinal": self.cardinal,
            "mode": self.source_mode,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "HeadingSample":
        """Rebuild a sample from its persisted form.

        Raises:
            ValueError: On a missing, mistyped or out-of-range field.
        """
        try:
            ts = data["ts"]
            heading = data["heading"]
            mode = data["mode"]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Incomplete log entry: {data!r}") from exc
        if not isinstance(ts, str) or not isinstance(mode, str):
            raise ValueError(f"Mistyped log entry: {data!r}")
        if isinstance(heading, bool) or not isinstance(heading, (int, float)):
            raise ValueError(f"Non-numeric heading in log entry: {data!r}")
        return cls.create(heading, mode, parse_timestamp(ts))

    def csv_row(self) -> str:
        return (
            f"{format_timestamp(self.timestamp)},{self.heading:g},"
            f"{self.cardinal},{self.source_mode}"
        )


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------
class HeadingLog:
    """Operations on the newest-first log held by a :class:`CompassState`.

    The log list and its size bound live on the state object; this class
    only implements the policy and mutations on top of them.
    """

    def __init__(self, state, change_threshold: float = DEFAULT_CHANGE_THRESHOLD,
                 interval_ms: float = DEFAULT_INTERVAL_MS):
        self.state = state
        self.change_threshold = change_threshold
        self.interval_ms = interval_ms

    @property
    def entries(self) -> List[HeadingSample]:
        return self.state.log

    @property
    def latest(self) -> Optional[HeadingSample]:
        return self.state.log[0] if self.state.log else None

    def should_log(self, raw_heading: float, now: datetime) -> bool:
        """Return ``True`` when *raw_heading* at *now* deserves an entry."""
        last = self.latest
        if last is None:
            return True
        if abs(shortest_signed_diff(last.heading, normalize(raw_heading))) > self.change_threshold:
            return True
        elapsed_ms = (truncate_ms(now) - last.timestamp).total_seconds() * 1000.0
        return elapsed_ms < 0 or elapsed_ms > self.interval_ms

    def record(self, heading: float, source_mode: str, now: datetime) -> HeadingSample:
        """Insert a new entry at the front and drop overflow from the tail."""
        sample = HeadingSample.create(heading, source_mode, now)
        self.state.log.insert(0, sample)
        self.truncate()
        logger.debug("Logged %.2f° %s (%s)", sample.heading, sample.cardinal,
                     sample.source_mode)
        return sample

    def truncate(self) -> None:
        limit = self.state.settings.log_size
        if len(self.state.log) > limit:
            del self.state.log[limit:]

    def clear(self) -> None:
        self.state.log.clear()
        logger.info("Heading log cleared")

    def pin(self, index: int) -> HeadingSample:
        """Return the entry at *index* without changing the log.

        Raises:
            IndexError: If *index* is outside the log.
        """
        if not 0 <= index < len(self.state.log):
            raise IndexError(f"No log entry at index {index}")
        return self.state.log[index]

    def to_csv(self) -> str:
        """Render the log as CSV, newest entry first."""
        rows = [CSV_HEADER]
        rows.extend(sample.csv_row() for sample in self.state.log)
        return "\n".join(rows)
