"""
Advanced Compass - Heading Smoothing, Correction and Logging
Main Application Entry Point (Controller Pattern)

Copyright (c) 2026 Kay Schäfer. All Rights Reserved.
Proprietary and confidential. See LICENSE for details.

Loads config.yaml, restores the saved compass state, starts the
configured sensor source and runs the single-consumer event loop that
feeds every input event through the reducer and executes the resulting
effects.  Includes rotating log files.
"""

import atexit
import logging
import logging.handlers
import queue
import threading
import time
from pathlib import Path
from typing import Optional

import yaml
import flet as ft

from compass_state import CompassState, Settings
from data_loader import load_recording, write_export
from event_log import utc_now
from gui import COLOR_BG, COMPASS_SIZE, CompassGUI, local_xy
from localization import set_language, t
from path_utils import resolve_path
from persistence import DEFAULT_STORAGE_KEY, SnapshotStore
from reducer import (
    CALIBRATION_STEP_MS,
    CalibrationFinished,
    CalibrationStep,
    ClearLog,
    DeclinationRejected,
    DeclinationSubmitted,
    ExportCsv,
    ExportLog,
    PersistSnapshot,
    PinLogEntry,
    PipelineConfig,
    PointerDoubleClick,
    PointerDown,
    PointerMove,
    PointerUp,
    RenderLog,
    RenderNeedle,
    RenderReadout,
    RenderTicks,
    SensorEvent,
    SetStatus,
    SettingsSubmitted,
    StartCalibration,
    TrueNorthToggled,
    calibration_sweep,
    reduce,
)
from replay_handler import ReplaySensor
from serial_sensor import SerialCompass
from settings_gui import show_settings_dialog
from simulation_sensor import PointerSimulation

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = resolve_path("config.yaml")


# ---------------------------------------------------------------------------
# GUI Logging Handler – forwards log records to the GUI log terminal
# ---------------------------------------------------------------------------
class GuiLogHandler(logging.Handler):
    """Custom logging handler that forwards messages to the GUI log console."""

    def __init__(self, gui):
        super().__init__()
        self._gui = gui

    def emit(self, record):
        """Format *record* and append it to the GUI log console."""
        try:
            msg = self.format(record)
            self._gui.write_log(msg)
        except Exception:
            self.handleError(record)


# ---------------------------------------------------------------------------
# Default configuration – used as fallback when keys are missing / invalid
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    "language": "en",
    "compass": {
        "smoothing": 0.12,
        "throttle_ms": 15.0,
        "log_change_threshold": 3.0,
        "log_interval_ms": 3000.0,
    },
    "defaults": {
        "units": "deg",
        "tick_density": 36,
        "log_size": 100,
    },
    "sensor": {
        "source": "pointer",
        "serial_port": "COM4",
        "baud_rate": 9600,
        "timeout": 1.0,
        "replay_file": "",
        "replay_speed": 1.0,
    },
    "storage": {
        "file": "compass_state.json",
        "key": DEFAULT_STORAGE_KEY,
    },
    "export": {
        "directory": "exports",
    },
    "logging": {
        "level": "INFO",
        "file": "compass.log",
        "console": True,
    },
}


# ---------------------------------------------------------------------------
# Config helpers
# ---------------------------------------------------------------------------
def _deep_merge(defaults: dict, overrides: dict) -> dict:
    """Recursively merge *overrides* into *defaults* (non-destructive)."""
    merged = dict(defaults)
    for key, default_val in defaults.items():
        if key not in overrides:
            logger.warning("Config key '%s' missing, using default %r", key, default_val)
            continue
        override_val = overrides[key]
        if isinstance(default_val, dict) and isinstance(override_val, dict):
            merged[key] = _deep_merge(default_val, override_val)
        elif isinstance(default_val, dict) and not isinstance(override_val, dict):
            logger.warning(
                "Config key '%s' has wrong type (expected dict), using default", key
            )
        elif not _type_ok(default_val, override_val):
            logger.warning(
                "Config key '%s' has wrong type (expected %s, got %s), using default %r",
                key,
                type(default_val).__name__,
                type(override_val).__name__,
                default_val,
            )
        else:
            merged[key] = override_val
    # Carry forward extra keys from overrides that are not in defaults
    for key in overrides:
        if key not in defaults:
            merged[key] = overrides[key]
    return merged


def _type_ok(default, value) -> bool:
    """Return True when *value* is type-compatible with *default*."""
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(default, str):
        return isinstance(value, str)
    return True  # unknown types pass through


def load_config(path: Optional[str] = None) -> dict:
    """Load configuration from a YAML file with validation.

    Missing keys or wrong types fall back to ``DEFAULT_CONFIG``.
    If the file cannot be parsed at all the full defaults are returned.

    Args:
        path: Path to config file.  Defaults to ``config.yaml`` in the
              repository root.

    Returns:
        Validated configuration dictionary.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        with open(config_path, "r") as fh:
            raw = yaml.safe_load(fh)
        if not isinstance(raw, dict):
            logger.warning("Config file did not produce a dict – using defaults")
            return _deep_merge(DEFAULT_CONFIG, {})
        logger.info("Configuration loaded from %s", config_path)
        return _deep_merge(DEFAULT_CONFIG, raw)
    except FileNotFoundError:
        logger.warning("Config file not found: %s – using defaults", config_path)
        return _deep_merge(DEFAULT_CONFIG, {})
    except yaml.YAMLError as exc:
        logger.error("Error parsing config file: %s – using defaults", exc)
        return _deep_merge(DEFAULT_CONFIG, {})


# ---------------------------------------------------------------------------
# Main controller
# ---------------------------------------------------------------------------
class CompassController:
    """Owns the compass state and bridges the GUI, sensors and storage.

    Every input (sensor reading, pointer gesture, button, settings form)
    is posted as an event to one queue.  A single consumer thread applies
    each event with :func:`reducer.reduce` and then executes the returned
    effects, so state is only ever mutated from that thread.
    """

    def __init__(self, config: Optional[dict] = None,
                 gui: Optional[CompassGUI] = None,
                 start_threads: bool = True):
        """Initialise state, storage, the sensor source and the event loop.

        Args:
            config: Validated configuration dictionary.  When ``None``,
                    the default ``config.yaml`` is loaded automatically.
            gui:    Optional :class:`CompassGUI` instance.  Pass ``None``
                    for headless / test operation.
            start_threads: Start the event loop and sensor threads.  Tests
                    pass ``False`` and call :meth:`dispatch` directly.
        """
        if config is None:
            config = load_config()
        self.config = config

        self._setup_logging()

        try:
            self.pipeline = PipelineConfig.from_config(config)
        except ValueError as exc:
            logger.warning("Invalid compass config (%s) – using defaults", exc)
            self.pipeline = PipelineConfig()

        try:
            settings = Settings.from_config(config)
        except (ValueError, TypeError) as exc:
            logger.warning("Invalid default settings (%s) – using built-ins", exc)
            settings = Settings()
        self.state = CompassState(settings=settings)

        storage = config.get("storage", {})
        self.store = SnapshotStore(
            resolve_path(storage.get("file", "compass_state.json")),
            storage.get("key", DEFAULT_STORAGE_KEY),
        )
        self.store.load_into(self.state)

        self.export_dir = resolve_path(config.get("export", {}).get("directory", "exports"))
        self.pointer = PointerSimulation(COMPASS_SIZE, COMPASS_SIZE)
        self.source_name: str = config.get("sensor", {}).get("source", "pointer")

        self._events: "queue.Queue" = queue.Queue()
        self._running = True
        self._threads: list = []
        self.serial: Optional[SerialCompass] = None
        self.replay: Optional[ReplaySensor] = None
        self._calibration_thread: Optional[threading.Thread] = None
        self.last_export: Optional[Path] = None

        # -- GUI ----------------------------------------------------------
        self.gui = gui
        if gui is not None:
            gui_handler = GuiLogHandler(gui)
            gui_handler.setLevel(logging.INFO)
            gui_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
            logging.getLogger().addHandler(gui_handler)
            self._bind_gui(gui)
            self._render_initial(gui)

        if start_threads:
            self._start_thread(self._event_loop, "compass-events")
            self._start_source()

    # ---- Logging --------------------------------------------------------
    def _setup_logging(self):
        """Configure the root logger with RotatingFileHandler."""
        log_cfg = self.config.get("logging", {})
        level = getattr(logging, log_cfg.get("level", "INFO"), logging.INFO)
        log_file = log_cfg.get("file")
        fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

        handlers: list = []
        if log_cfg.get("console", True):
            handlers.append(logging.StreamHandler())
        if log_file:
            rotating = logging.handlers.RotatingFileHandler(
                resolve_path(log_file),
                maxBytes=5 * 1024 * 1024,   # 5 MB
                backupCount=5,
            )
            handlers.append(rotating)

        logging.basicConfig(
            level=level,
            format=fmt,
            handlers=handlers or [logging.StreamHandler()],
        )

    # ---- GUI wiring -----------------------------------------------------
    def _bind_gui(self, gui: CompassGUI) -> None:
        """Connect GUI controls to event producers."""
        gui.gesture.on_pan_start = lambda e: self.post(PointerDown(utc_now()))
        gui.gesture.on_pan_update = lambda e: self._on_pointer_move(e)
        gui.gesture.on_pan_end = lambda e: self.post(PointerUp(utc_now()))
        gui.gesture.on_double_tap = lambda e: self.post(PointerDoubleClick(utc_now()))

        gui.btn_apply_declination.on_click = lambda e: self.post(
            DeclinationSubmitted(gui.tf_declination.value or "")
        )
        gui.sw_true_north.on_change = lambda e: self.post(
            TrueNorthToggled(bool(e.control.value))
        )
        gui.btn_clear_log.on_click = lambda e: gui.confirm_clear(
            lambda: self.post(ClearLog())
        )
        gui.btn_export_log.on_click = lambda e: self.post(ExportLog(utc_now()))
        gui.btn_settings.on_click = lambda e: show_settings_dialog(
            gui.page, self.state.settings, self._on_settings_submitted,
        )
        gui.btn_calibrate.on_click = lambda e: self.start_calibration()
        gui.btn_help.on_click = lambda e: gui.show_help()
        gui.btn_diagnostics.on_click = lambda e: self._run_diagnostics()
        gui.on_pin_entry = lambda index: self.post(PinLogEntry(index))

    def _render_initial(self, gui: CompassGUI) -> None:
        """Show the restored state before the first event arrives."""
        gui.set_controls(self.state.declination, self.state.use_true_north)
        gui.build_ticks(self.state.settings.tick_density)
        gui.render_log(self.state.log)
        gui.batch_update()

    def _on_pointer_move(self, e) -> None:
        x, y = local_xy(e)
        # Pan updates only arrive while the pointer is held down
        self.post(PointerMove(self.pointer.reading_at(x, y), utc_now(),
                              buttons_held=True))

    def _on_settings_submitted(self, units, tick_density, log_size) -> None:
        self.post(SettingsSubmitted(units, tick_density, log_size))

    # ---- Event queue ----------------------------------------------------
    def post(self, event) -> None:
        """Queue *event* for the event loop (safe from any thread)."""
        self._events.put(event)

    def _event_loop(self) -> None:
        """Single consumer: apply queued events one at a time.

        Runs until the ``None`` sentinel from :meth:`shutdown`, so events
        posted before shutdown are still applied.
        """
        while True:
            event = self._events.get()
            if event is None:
                break
            try:
                self.dispatch(event)
            except Exception:
                logger.exception("Failed to handle %s", type(event).__name__)

    def dispatch(self, event) -> list:
        """Apply *event* to the state now and execute its effects.

        Returns:
            The effects that were executed.
        """
        effects = reduce(self.state, event, self.pipeline)
        self._execute(effects)
        return effects

    def _execute(self, effects: list) -> None:
        """Carry out reducer effects in order."""
        gui = self.gui
        for effect in effects:
            if isinstance(effect, PersistSnapshot):
                self.store.save(self.state)
            elif isinstance(effect, ExportCsv):
                self._export(effect)
            elif gui is None:
                continue
            elif isinstance(effect, RenderNeedle):
                gui.draw_needle(effect.angle)
            elif isinstance(effect, RenderReadout):
                gui.show_readout(effect.readout)
            elif isinstance(effect, RenderLog):
                gui.render_log(effect.entries)
            elif isinstance(effect, RenderTicks):
                gui.build_ticks(effect.density)
            elif isinstance(effect, SetStatus):
                gui.set_status(t(effect.key).format(**effect.params))
            elif isinstance(effect, DeclinationRejected):
                gui.flag_declination_error()
        if gui is not None and effects:
            gui.batch_update()

    def _export(self, effect: ExportCsv) -> None:
        try:
            self.last_export = write_export(effect.content, self.export_dir, effect.at)
        except OSError as exc:
            logger.error("Failed to export heading log: %s", exc)
            self._show_status("status.export_failed")
            return
        self._show_status("status.exported", path=str(self.last_export))

    def _show_status(self, key: str, **params) -> None:
        if self.gui is not None:
            self.gui.set_status(t(key).format(**params))
            self.gui.batch_update()

    # ---- Sensor sources -------------------------------------------------
    def _start_thread(self, target, name: str) -> threading.Thread:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)
        return thread

    def _start_source(self) -> None:
        """Start the configured sensor source (pointer is always available)."""
        sensor = self.config.get("sensor", {})
        if self.source_name == "serial":
            self.serial = SerialCompass(
                sensor.get("serial_port", "COM4"),
                int(sensor.get("baud_rate", 9600)),
                float(sensor.get("timeout", 1.0)),
            )
            if self.serial.connect():
                self._start_thread(self._serial_loop, "compass-serial")
                self._show_status("status.serial_listening", port=self.serial.port)
            else:
                self._show_status("status.serial_unavailable")
        elif self.source_name == "replay":
            name = sensor.get("replay_file", "")
            try:
                records = load_recording(resolve_path(name))
                self.replay = ReplaySensor(records, float(sensor.get("replay_speed", 1.0)))
            except (OSError, ValueError) as exc:
                logger.warning("Cannot replay %r: %s", name, exc)
                self._show_status("status.replay_unavailable")
                return
            self._start_thread(self._replay_loop, "compass-replay")
            self._show_status("status.replaying", name=Path(name).name)
        elif self.source_name != "pointer":
            logger.warning("Unknown sensor source %r – pointer simulation only",
                           self.source_name)

    def _serial_loop(self) -> None:
        while self._running:
            if not self.serial.connected:
                # read_line() only retries every RECONNECT_DELAY seconds
                time.sleep(self.serial.timeout)
            reading = self.serial.read_reading()
            if reading is not None:
                self.post(SensorEvent(reading, utc_now()))

    def _replay_loop(self) -> None:
        for moment, reading in self.replay.play(utc_now()):
            if not self._running:
                break
            self.post(SensorEvent(reading, moment))

    # ---- Calibration ----------------------------------------------------
    def start_calibration(self) -> None:
        """Start the calibration sweep unless one is already running."""
        if self._calibration_thread is not None and self._calibration_thread.is_alive():
            logger.debug("Calibration sweep already running")
            return
        self.post(StartCalibration())
        self._calibration_thread = self._start_thread(self._calibration_loop,
                                                      "compass-calibration")

    def _calibration_loop(self) -> None:
        delay = CALIBRATION_STEP_MS / 1000.0
        for angle in calibration_sweep():
            if not self._running:
                return
            time.sleep(delay)
            self.post(CalibrationStep(angle))
        self.post(CalibrationFinished())

    # ---- Diagnostics ----------------------------------------------------
    def _run_diagnostics(self) -> None:
        """Run diagnostics in a background thread and show the report."""
        if self.gui is None:
            return

        dlg = self.gui.show_diagnostics_loading()

        def _bg_diagnostics():
            try:
                from diagnostics import SystemDiagnostics
                report = SystemDiagnostics(self.config, controller=self).run_all()
                self.gui.show_diagnostics(report, dlg=dlg)
            except Exception as exc:
                logger.error("Diagnostics failed: %s", exc)

        threading.Thread(target=_bg_diagnostics, daemon=True).start()

    # ---- Cleanup --------------------------------------------------------
    def shutdown(self) -> None:
        """Stop the sources and the event loop.  Safe to call repeatedly."""
        if not self._running:
            return
        self._running = False
        if self.replay is not None:
            self.replay.stop()
        if self.serial is not None:
            self.serial.disconnect()
        self._events.put(None)
        for thread in self._threads:
            thread.join(timeout=2.0)
        logger.info("Compass controller stopped")


def main(page: ft.Page):
    """Flet main entry point – configures the page and starts the controller."""
    config = load_config()
    try:
        set_language(config.get("language", "en"))
    except ValueError as exc:
        logger.warning("%s – falling back to English", exc)

    page.title = t("app.title")
    page.bgcolor = COLOR_BG
    page.theme_mode = ft.ThemeMode.DARK
    page.window.width = 1280
    page.window.height = 760

    gui = CompassGUI(page)
    controller = CompassController(config=config, gui=gui)
    # Keep references on the page to prevent garbage collection
    page._compass_gui = gui
    page._compass_controller = controller

    # Close the serial port and stop the threads when the session or the
    # process ends
    atexit.register(controller.shutdown)
    page.on_close = lambda e: controller.shutdown()


if __name__ == "__main__":
    ft.run(main)
