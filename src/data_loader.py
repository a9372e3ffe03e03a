"""
Advanced Compass - Heading Smoothing, Correction and Logging
CSV Data Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Loads recorded orientation events for the replay/demo source and
writes exported heading logs to disk.
"""

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from event_log import parse_timestamp
from heading_source import GenericOrientationReading, PlatformCompassReading

logger = logging.getLogger(__name__)

RECORDING_COLUMNS = ("timestamp", "source", "value", "accuracy", "absolute")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "abs")


def _parse_optional_float(value: str) -> Optional[float]:
    value = value.strip()
    if not value:
        return None
    return float(value)


def load_recording(filepath: str | Path) -> List[Dict]:
    """Load an orientation recording.

    The file is comma-delimited with a header row
    ``timestamp,source,value,accuracy,absolute``.  ``source`` is either
    ``compass`` (a direct heading, optional accuracy in degrees) or
    ``alpha`` (a device-frame angle, optional ``absolute`` flag).
    Lines starting with ``#`` are comments.

    Each returned dictionary contains:

    * ``timestamp`` – aware :class:`datetime`
    * ``reading`` – a ``PlatformCompassReading`` or
      ``GenericOrientationReading``
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Recording not found: {filepath}")

    records: List[Dict] = []
    with open(filepath, "r", encoding="utf-8", newline="") as fh:
        rows = (line for line in fh if not line.lstrip().startswith("#"))
        reader = csv.DictReader(rows)
        missing = [c for c in RECORDING_COLUMNS[:3] if c not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"Recording {filepath} lacks columns: {', '.join(missing)}")

        for row in reader:
            try:
                source = (row.get("source") or "").strip().lower()
                value = float(row["value"])
                if source == "compass":
                    reading = PlatformCompassReading(
                        heading=value,
                        accuracy=_parse_optional_float(row.get("accuracy") or ""),
                    )
                elif source == "alpha":
                    reading = GenericOrientationReading(
                        alpha=value,
                        absolute=_parse_bool(row.get("absolute") or ""),
                    )
                else:
                    logger.warning("Skipping row with unknown source: %s", row)
                    continue
                records.append({
                    "timestamp": parse_timestamp(row["timestamp"]),
                    "reading": reading,
                })
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("Skipping row due to parse error: %s – %s", row, exc)
                continue

    records.sort(key=lambda r: r["timestamp"])
    logger.info("Loaded %d records from %s", len(records), filepath)
    return records


def export_filename(moment: datetime) -> str:
    """Return the export file name, e.g. ``compass-log-2026-01-02-03-04-05.csv``."""
    return f"compass-log-{moment.strftime('%Y-%m-%d-%H-%M-%S')}.csv"


def write_export(content: str, directory: str | Path, moment: datetime) -> Path:
    """Write exported CSV *content* into *directory* and return the path.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / export_filename(moment)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(content)
        fh.write("\n")
    logger.info("Exported heading log to %s", path)
    return path
