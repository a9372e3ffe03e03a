"""
Advanced Compass - Heading Smoothing, Correction and Logging
Diagnostics Module

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

System diagnostics that help users troubleshoot missing sensors,
configuration mistakes and storage problems.  Each check returns a
structured result with a status, human-readable message, and
actionable suggestion.
"""

import datetime
import json
import logging
import platform
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List

from path_utils import resolve_path

logger = logging.getLogger(__name__)

SENSOR_SOURCES = ("pointer", "serial", "replay")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
class Status(Enum):
    """Outcome of a single diagnostic check."""
    OK = "OK"
    WARNING = "WARNING"
    ERROR = "ERROR"
    INFO = "INFO"


@dataclass
class DiagResult:
    """Result of a single diagnostic check."""
    category: str
    name: str
    status: Status
    message: str
    suggestion: str = ""


@dataclass
class DiagReport:
    """Complete diagnostics report."""
    results: List[DiagResult] = field(default_factory=list)
    timestamp: str = ""
    duration_s: float = 0.0

    @property
    def errors(self) -> List[DiagResult]:
        return [r for r in self.results if r.status == Status.ERROR]

    @property
    def warnings(self) -> List[DiagResult]:
        return [r for r in self.results if r.status == Status.WARNING]

    @property
    def ok_count(self) -> int:
        return sum(1 for r in self.results if r.status == Status.OK)

    @property
    def summary(self) -> str:
        total = len(self.results)
        ok = self.ok_count
        warn = len(self.warnings)
        err = len(self.errors)
        if err:
            return f"{err} error(s), {warn} warning(s), {ok}/{total} checks OK"
        if warn:
            return f"No errors, {warn} warning(s), {ok}/{total} checks OK"
        return f"All {total} checks passed"


# ---------------------------------------------------------------------------
# Diagnostics engine
# ---------------------------------------------------------------------------
class SystemDiagnostics:
    """Run system diagnostics.

    Args:
        config: The application configuration dictionary.
        controller: Optional ``CompassController`` instance for live checks.
    """

    def __init__(self, config: dict, controller=None):
        self.config = config
        self.controller = controller

    def run_all(self) -> DiagReport:
        """Execute every diagnostic check and return the full report."""
        start = time.monotonic()
        report = DiagReport(timestamp=datetime.datetime.now().isoformat())

        report.results.extend(self._check_system())
        report.results.extend(self._check_python())
        report.results.extend(self._check_config())
        report.results.extend(self._check_sensor())
        report.results.extend(self._check_storage())
        report.results.extend(self._check_live())

        report.duration_s = round(time.monotonic() - start, 2)
        logger.info("Diagnostics completed in %.2fs: %s",
                    report.duration_s, report.summary)
        return report

    # ---- System / Python ---------------------------------------------------
    def _check_system(self) -> List[DiagResult]:
        return [DiagResult(
            category="System", name="Operating System",
            status=Status.INFO,
            message=f"{platform.system()} {platform.release()} ({platform.machine()})",
        )]

    def _check_python(self) -> List[DiagResult]:
        results: List[DiagResult] = []

        ver = sys.version_info
        results.append(DiagResult(
            category="Python", name="Python Version",
            status=Status.OK if ver >= (3, 10) else Status.ERROR,
            message=f"Python {ver.major}.{ver.minor}.{ver.micro}",
            suggestion="" if ver >= (3, 10) else "Python 3.10+ is required. Please upgrade.",
        ))

        modules = {
            "flet": ("GUI framework", "flet"),
            "yaml": ("Configuration", "pyyaml"),
            "numpy": ("Math calculations", "numpy"),
            "serial": ("Serial compass", "pyserial"),
        }
        for mod, (desc, dist) in modules.items():
            try:
                __import__(mod)
                results.append(DiagResult(
                    category="Python", name=f"Module: {mod}",
                    status=Status.OK, message=f"{desc} – installed",
                ))
            except ImportError:
                results.append(DiagResult(
                    category="Python", name=f"Module: {mod}",
                    status=Status.ERROR,
                    message=f"{desc} – NOT installed",
                    suggestion=f"Install with: pip install {dist}",
                ))
        return results

    # ---- Configuration -----------------------------------------------------
    def _check_config(self) -> List[DiagResult]:
        results: List[DiagResult] = []

        config_path = resolve_path("config.yaml")
        if config_path.is_file():
            results.append(DiagResult(
                category="Config", name="Config File",
                status=Status.OK, message=f"Found: {config_path}",
            ))
        else:
            results.append(DiagResult(
                category="Config", name="Config File",
                status=Status.WARNING,
                message=f"Not found: {config_path}",
                suggestion="Using default settings. Create config.yaml to customise.",
            ))

        compass = self.config.get("compass", {})
        alpha = compass.get("smoothing", 0.12)
        if not 0.0 < alpha < 1.0:
            results.append(DiagResult(
                category="Config", name="Smoothing",
                status=Status.ERROR,
                message=f"Smoothing coefficient {alpha} is outside (0, 1)",
                suggestion="Set compass.smoothing to a value such as 0.12.",
            ))
        elif alpha > 0.5:
            results.append(DiagResult(
                category="Config", name="Smoothing",
                status=Status.WARNING,
                message=f"Smoothing coefficient {alpha} – needle will be jittery",
                suggestion="Lower compass.smoothing for a calmer needle.",
            ))
        else:
            results.append(DiagResult(
                category="Config", name="Smoothing",
                status=Status.OK, message=f"α = {alpha}",
            ))

        source = self.config.get("sensor", {}).get("source", "pointer")
        if source in SENSOR_SOURCES:
            results.append(DiagResult(
                category="Config", name="Sensor Source",
                status=Status.INFO, message=f"Configured: {source}",
            ))
        else:
            results.append(DiagResult(
                category="Config", name="Sensor Source",
                status=Status.ERROR,
                message=f"Unknown sensor source {source!r}",
                suggestion=f"Use one of: {', '.join(SENSOR_SOURCES)}.",
            ))
        return results

    # ---- Sensor source -----------------------------------------------------
    def _check_sensor(self) -> List[DiagResult]:
        sensor = self.config.get("sensor", {})
        source = sensor.get("source", "pointer")
        if source == "serial":
            return self._check_serial(sensor)
        if source == "replay":
            return self._check_replay(sensor)
        return [DiagResult(
            category="Sensor", name="Pointer Simulation",
            status=Status.OK,
            message="Drag on the compass to simulate headings",
        )]

    def _check_serial(self, sensor: dict) -> List[DiagResult]:
        results: List[DiagResult] = []
        try:
            import serial.tools.list_ports
            ports = list(serial.tools.list_ports.comports())
        except ImportError:
            return [DiagResult(
                category="Sensor", name="Available Ports",
                status=Status.ERROR,
                message="pyserial not installed – cannot scan ports",
                suggestion="Install with: pip install pyserial",
            )]

        if ports:
            results.append(DiagResult(
                category="Sensor", name="Available Ports",
                status=Status.OK,
                message="; ".join(f"{p.device} ({p.description})" for p in ports),
            ))
        else:
            results.append(DiagResult(
                category="Sensor", name="Available Ports",
                status=Status.WARNING,
                message="No serial ports detected",
                suggestion="Connect the compass module via USB.",
            ))

        port = sensor.get("serial_port", "")
        if any(p.device == port for p in ports):
            results.append(DiagResult(
                category="Sensor", name=f"Configured Port ({port})",
                status=Status.OK, message=f"Port {port} is available",
            ))
        else:
            results.append(DiagResult(
                category="Sensor", name=f"Configured Port ({port})",
                status=Status.ERROR,
                message=f"Port {port} not found",
                suggestion="Check sensor.serial_port in config.yaml.",
            ))
        return results

    def _check_replay(self, sensor: dict) -> List[DiagResult]:
        name = sensor.get("replay_file", "")
        if not name:
            return [DiagResult(
                category="Sensor", name="Recording",
                status=Status.ERROR,
                message="No recording configured",
                suggestion="Set sensor.replay_file in config.yaml.",
            )]
        path = resolve_path(name)
        if not path.is_file():
            return [DiagResult(
                category="Sensor", name="Recording",
                status=Status.ERROR, message=f"Not found: {path}",
            )]
        try:
            from data_loader import load_recording
            records = load_recording(path)
        except (OSError, ValueError) as exc:
            return [DiagResult(
                category="Sensor", name="Recording",
                status=Status.ERROR, message=f"Unreadable: {exc}",
            )]
        return [DiagResult(
            category="Sensor", name="Recording",
            status=Status.OK if records else Status.WARNING,
            message=f"{len(records)} records in {path.name}",
        )]

    # ---- Storage -----------------------------------------------------------
    def _check_storage(self) -> List[DiagResult]:
        results: List[DiagResult] = []
        storage = self.config.get("storage", {})
        state_path = resolve_path(storage.get("file", "compass_state.json"))

        if state_path.is_file():
            try:
                json.loads(state_path.read_text(encoding="utf-8"))
                results.append(DiagResult(
                    category="Storage", name="Saved State",
                    status=Status.OK, message=f"Readable: {state_path}",
                ))
            except (OSError, ValueError) as exc:
                results.append(DiagResult(
                    category="Storage", name="Saved State",
                    status=Status.WARNING,
                    message=f"Saved state is corrupt: {exc}",
                    suggestion="Delete the file to start with default settings.",
                ))
        else:
            results.append(DiagResult(
                category="Storage", name="Saved State",
                status=Status.INFO, message=f"No saved state yet ({state_path})",
            ))

        export_dir = resolve_path(self.config.get("export", {}).get("directory", "exports"))
        for label, directory in (("State Directory", state_path.parent),
                                 ("Export Directory", export_dir)):
            marker = Path(directory) / ".compass_diag_test"
            try:
                Path(directory).mkdir(parents=True, exist_ok=True)
                marker.write_text("test")
                marker.unlink()
                results.append(DiagResult(
                    category="Storage", name=label,
                    status=Status.OK, message=f"Writable: {directory}",
                ))
            except OSError:
                results.append(DiagResult(
                    category="Storage", name=label,
                    status=Status.ERROR,
                    message=f"Cannot write to {directory}",
                    suggestion="Change the path in config.yaml or fix permissions.",
                ))

        log_file = self.config.get("logging", {}).get("file")
        if log_file:
            log_path = resolve_path(log_file)
            try:
                with open(log_path, "a"):
                    pass
                results.append(DiagResult(
                    category="Storage", name="Log File",
                    status=Status.OK, message=f"Writable: {log_path}",
                ))
            except OSError:
                results.append(DiagResult(
                    category="Storage", name="Log File",
                    status=Status.WARNING,
                    message=f"Cannot write log file: {log_path}",
                    suggestion="Check file permissions or change logging.file in config.",
                ))
        return results

    # ---- Live state --------------------------------------------------------
    def _check_live(self) -> List[DiagResult]:
        if self.controller is None:
            return []
        state = self.controller.state
        results = [DiagResult(
            category="Live", name="Heading Log",
            status=Status.INFO,
            message=f"{len(state.log)}/{state.settings.log_size} entries",
        )]
        if state.last_sensor_at is None:
            results.append(DiagResult(
                category="Live", name="Sensor Events",
                status=Status.WARNING if self.controller.source_name != "pointer"
                else Status.INFO,
                message="No sensor event received yet",
            ))
        else:
            results.append(DiagResult(
                category="Live", name="Sensor Events",
                status=Status.OK,
                message=f"Last sensor event at {state.last_sensor_at.isoformat()}",
            ))
        return results
