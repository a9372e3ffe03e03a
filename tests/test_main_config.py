"""Tests for config loading and the CompassController.

These tests do NOT require a display – the controller runs headless or
with a mocked GUI, and all files go to ``tmp_path``.
"""

import copy
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

# Ensure the src package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from heading_source import PlatformCompassReading
from localization import set_language, t
from main import (
    DEFAULT_CONFIG,
    CompassController,
    GuiLogHandler,
    _deep_merge,
    load_config,
    main as run_app,
)
from reducer import (
    CalibrationFinished,
    CalibrationStep,
    ClearLog,
    DeclinationSubmitted,
    ExportLog,
    PinLogEntry,
    PointerDown,
    PointerMove,
    SensorEvent,
    StartCalibration,
    TrueNorthToggled,
)

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)
SAMPLE = Path(__file__).resolve().parent.parent / "testdata" / "sample_walk.csv"


@pytest.fixture(autouse=True)
def _english_and_clean_root_logger():
    set_language("en")
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, GuiLogHandler):
            root.removeHandler(handler)


@pytest.fixture
def config(tmp_path):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["logging"]["file"] = ""
    cfg["storage"]["file"] = str(tmp_path / "state.json")
    cfg["export"]["directory"] = str(tmp_path / "exports")
    return cfg


def _sensor(heading: float, second: int = 0) -> SensorEvent:
    return SensorEvent(PlatformCompassReading(heading), T0.replace(second=second))


# ---------------------------------------------------------------------------
# load_config tests
# ---------------------------------------------------------------------------
class TestLoadConfig:
    """Unit tests for the YAML config loader."""

    def test_load_existing_config(self, tmp_path):
        """A valid YAML file should be parsed and merged with defaults."""
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("compass:\n  smoothing: 0.25\n")
        result = load_config(str(cfg_file))
        assert result["compass"]["smoothing"] == 0.25
        # Missing keys should be filled from defaults
        assert result["compass"]["throttle_ms"] == 15.0
        assert result["storage"]["key"] == "advanced_compass_v1"

    def test_missing_config_returns_defaults(self, tmp_path):
        """A non-existent path should return DEFAULT_CONFIG."""
        result = load_config(str(tmp_path / "does_not_exist.yaml"))
        assert result == DEFAULT_CONFIG

    def test_invalid_yaml_returns_defaults(self, tmp_path):
        """Malformed YAML should return DEFAULT_CONFIG."""
        cfg_file = tmp_path / "bad.yaml"
        cfg_file.write_text(":::\n  - ][")
        result = load_config(str(cfg_file))
        assert result == DEFAULT_CONFIG

    def test_empty_file_returns_defaults(self, tmp_path):
        """An empty YAML file should return DEFAULT_CONFIG."""
        cfg_file = tmp_path / "empty.yaml"
        cfg_file.write_text("")
        result = load_config(str(cfg_file))
        assert result == DEFAULT_CONFIG

    def test_default_config_loads(self):
        """The repo config.yaml should load without error."""
        result = load_config()
        assert isinstance(result, dict)
        assert "compass" in result
        assert result["sensor"]["source"] in ("pointer", "serial", "replay")


class TestDeepMerge:

    def test_wrong_type_falls_back(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"compass": {"smoothing": "fast"}})
        assert merged["compass"]["smoothing"] == 0.12

    def test_bool_is_not_a_number(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"defaults": {"log_size": True}})
        assert merged["defaults"]["log_size"] == 100

    def test_int_is_not_a_bool(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"logging": {"console": 1}})
        assert merged["logging"]["console"] is True

    def test_int_accepted_for_float(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"compass": {"throttle_ms": 20}})
        assert merged["compass"]["throttle_ms"] == 20

    def test_group_replaced_by_scalar_falls_back(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"storage": "state.json"})
        assert merged["storage"] == DEFAULT_CONFIG["storage"]

    def test_extra_keys_carried_forward(self):
        merged = _deep_merge(DEFAULT_CONFIG, {"experimental": {"x": 1}})
        assert merged["experimental"] == {"x": 1}

    def test_defaults_not_mutated(self):
        before = copy.deepcopy(DEFAULT_CONFIG)
        _deep_merge(DEFAULT_CONFIG, {"compass": {"smoothing": 0.5}})
        assert DEFAULT_CONFIG == before


# ---------------------------------------------------------------------------
# Headless controller
# ---------------------------------------------------------------------------
class TestControllerHeadless:

    def test_defaults(self, config):
        ctrl = CompassController(config, start_threads=False)
        assert ctrl.pipeline.smoothing == 0.12
        assert ctrl.state.settings.units == "deg"
        assert ctrl.state.log == []
        assert ctrl.source_name == "pointer"

    def test_invalid_smoothing_uses_default(self, config):
        config["compass"]["smoothing"] = 1.5
        ctrl = CompassController(config, start_threads=False)
        assert ctrl.pipeline.smoothing == 0.12

    def test_invalid_units_use_default(self, config):
        config["defaults"]["units"] = "furlongs"
        ctrl = CompassController(config, start_threads=False)
        assert ctrl.state.settings.units == "deg"

    def test_state_survives_restart(self, config):
        ctrl = CompassController(config, start_threads=False)
        ctrl.dispatch(_sensor(10.0))
        ctrl.dispatch(TrueNorthToggled(True))
        assert Path(config["storage"]["file"]).is_file()

        restarted = CompassController(config, start_threads=False)
        assert restarted.state.use_true_north is True
        assert [s.heading for s in restarted.state.log] == [10.0]
        assert restarted.state.last_raw_heading is None

    def test_export_writes_file(self, config):
        ctrl = CompassController(config, start_threads=False)
        ctrl.dispatch(_sensor(10.0))
        ctrl.dispatch(ExportLog(T0))
        assert ctrl.last_export is not None
        assert ctrl.last_export.name == "compass-log-2026-03-01-09-00-00.csv"
        assert ctrl.last_export.read_text(encoding="utf-8").startswith("timestamp,")

    def test_export_failure_is_reported(self, config, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config["export"]["directory"] = str(blocker)
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        ctrl.dispatch(_sensor(10.0))
        ctrl.dispatch(ExportLog(T0))
        assert ctrl.last_export is None
        gui.set_status.assert_any_call(t("status.export_failed"))


# ---------------------------------------------------------------------------
# Controller with a mocked GUI
# ---------------------------------------------------------------------------
class TestControllerGui:

    def test_initial_render(self, config):
        gui = MagicMock()
        CompassController(config, gui=gui, start_threads=False)
        gui.set_controls.assert_called_once_with(0.0, False)
        gui.build_ticks.assert_called_once_with(36)
        gui.render_log.assert_called_once()

    def test_effects_reach_gui(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        gui.reset_mock()
        ctrl.dispatch(_sensor(10.0))
        gui.draw_needle.assert_called_once_with(10.0)
        assert gui.show_readout.call_args[0][0].text == "10°"
        gui.set_status.assert_any_call(t("status.sensor"))
        gui.render_log.assert_called_once()
        gui.batch_update.assert_called()

    def test_rejected_declination_flags_field(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        ctrl.dispatch(DeclinationSubmitted("east"))
        gui.flag_declination_error.assert_called_once()

    def test_status_params_are_formatted(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        ctrl.dispatch(DeclinationSubmitted("2.5"))
        gui.set_status.assert_any_call("declination set to 2.5°")

    def test_controls_post_events(self, config):
        gui = MagicMock()
        gui.tf_declination.value = "3.5"
        ctrl = CompassController(config, gui=gui, start_threads=False)

        gui.btn_apply_declination.on_click(None)
        gui.on_pin_entry(2)
        gui.gesture.on_pan_start(None)
        gui.gesture.on_pan_update(
            SimpleNamespace(local_position=SimpleNamespace(x=300, y=160))
        )

        events = [ctrl._events.get_nowait() for _ in range(4)]
        assert events[0] == DeclinationSubmitted("3.5")
        assert events[1] == PinLogEntry(2)
        assert isinstance(events[2], PointerDown)
        assert isinstance(events[3], PointerMove)
        assert events[3].buttons_held is True
        assert (events[3].reading.x, events[3].reading.y) == (300.0, 160.0)

    def test_clear_asks_for_confirmation(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        gui.btn_clear_log.on_click(None)
        assert ctrl._events.empty()

        on_confirm = gui.confirm_clear.call_args[0][0]
        on_confirm()
        assert ctrl._events.get_nowait() == ClearLog()

    def test_help_button_opens_dialog(self, config):
        gui = MagicMock()
        CompassController(config, gui=gui, start_threads=False)
        gui.btn_help.on_click(None)
        gui.show_help.assert_called_once()

    def test_calibrate_button_posts_sweep(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=False)
        gui.btn_calibrate.on_click(None)
        # A second click while the sweep runs is ignored
        gui.btn_calibrate.on_click(None)
        ctrl._calibration_thread.join(timeout=5.0)

        events = []
        while not ctrl._events.empty():
            events.append(ctrl._events.get_nowait())
        assert events[0] == StartCalibration()
        steps = [e.angle for e in events if isinstance(e, CalibrationStep)]
        assert steps[0] == 18.0
        assert steps[-1] == 378.0
        assert len(steps) == 21
        assert events[-1] == CalibrationFinished()
        assert events.count(StartCalibration()) == 1


# ---------------------------------------------------------------------------
# Threads and sources
# ---------------------------------------------------------------------------
class TestControllerThreads:

    def test_event_loop_applies_posted_events(self, config):
        ctrl = CompassController(config, start_threads=True)
        ctrl.post(_sensor(10.0))
        ctrl.post(TrueNorthToggled(True))
        ctrl.shutdown()
        assert ctrl.state.last_raw_heading == 10.0
        assert ctrl.state.use_true_north is True

    def test_missing_recording_falls_back(self, config):
        config["sensor"]["source"] = "replay"
        config["sensor"]["replay_file"] = "does/not/exist.csv"
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=True)
        try:
            assert ctrl.replay is None
            gui.set_status.assert_any_call(t("status.replay_unavailable"))
        finally:
            ctrl.shutdown()

    def test_replay_feeds_pipeline(self, config):
        config["sensor"]["source"] = "replay"
        config["sensor"]["replay_file"] = str(SAMPLE)
        config["sensor"]["replay_speed"] = 10.0
        ctrl = CompassController(config, start_threads=True)
        replay_thread = next(th for th in ctrl._threads if th.name == "compass-replay")
        replay_thread.join(timeout=5.0)
        ctrl.shutdown()
        assert ctrl.state.last_raw_heading == 4.5
        assert len(ctrl.state.log) > 1

    def test_calibration_runs_through_event_loop(self, config):
        gui = MagicMock()
        ctrl = CompassController(config, gui=gui, start_threads=True)
        ctrl.post(_sensor(40.0))
        ctrl.start_calibration()
        ctrl._calibration_thread.join(timeout=5.0)
        ctrl.shutdown()

        assert ctrl.state.calibrating is False
        gui.set_status.assert_any_call(t("status.calibrating"))
        gui.set_status.assert_any_call(t("status.calibration_done"))
        # The needle comes back to the smoothed heading after the sweep
        assert gui.draw_needle.call_args[0][0] == 40.0

    def test_shutdown_is_idempotent(self, config):
        ctrl = CompassController(config, start_threads=True)
        ctrl.serial = MagicMock()
        ctrl.shutdown()
        ctrl.shutdown()
        ctrl.serial.disconnect.assert_called_once()
        assert ctrl._events.empty()
        assert not any(th.is_alive() for th in ctrl._threads)


# ---------------------------------------------------------------------------
# Application entry point
# ---------------------------------------------------------------------------
class TestMainEntry:

    def test_shutdown_registered_for_exit_and_session_close(self, config):
        page = MagicMock()
        with patch("main.load_config", return_value=config), \
                patch("main.CompassGUI") as gui_cls, \
                patch("main.CompassController") as controller_cls, \
                patch("main.atexit") as atexit_mod:
            run_app(page)

        controller = controller_cls.return_value
        controller_cls.assert_called_once_with(config=config,
                                               gui=gui_cls.return_value)
        atexit_mod.register.assert_called_once_with(controller.shutdown)
        controller.shutdown.assert_not_called()

        page.on_close(None)
        controller.shutdown.assert_called_once()
        assert page._compass_controller is controller
