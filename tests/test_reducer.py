"""Tests for the event reducer: state transitions and emitted effects.

Every test injects explicit timestamps, so the results do not depend on
the wall clock.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the src package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from compass_state import CompassState, Settings
from event_log import CSV_HEADER, HeadingLog
from heading_source import (
    GenericOrientationReading,
    PlatformCompassReading,
    PointerDragReading,
)
from reducer import (
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
    parse_declination,
    reduce,
)

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def at(ms: float) -> datetime:
    return T0 + timedelta(milliseconds=ms)


def sensor(heading: float, ms: float, accuracy=None) -> SensorEvent:
    return SensorEvent(PlatformCompassReading(heading, accuracy), at(ms))


def of_type(effects, cls):
    return [e for e in effects if isinstance(e, cls)]


EAST = PointerDragReading(x=200, y=100, center_x=100, center_y=100)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
class TestPipelineConfig:

    def test_defaults(self):
        config = PipelineConfig()
        assert config.smoothing == 0.12
        assert config.throttle_ms == 15.0
        assert config.log_change_threshold == 3.0
        assert config.log_interval_ms == 3000.0

    def test_from_config(self):
        config = PipelineConfig.from_config({"compass": {"smoothing": 0.3, "throttle_ms": 50}})
        assert config.smoothing == 0.3
        assert config.throttle_ms == 50.0
        assert config.log_interval_ms == 3000.0

    @pytest.mark.parametrize("kwargs", [
        {"smoothing": 0.0},
        {"smoothing": 1.0},
        {"throttle_ms": -1.0},
        {"log_interval_ms": -5.0},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            PipelineConfig(**kwargs)


# ---------------------------------------------------------------------------
# Sensor events
# ---------------------------------------------------------------------------
class TestSensorEvents:

    def test_heading_stream_scenario(self):
        """0°, 5°, 5°, 400° yields readouts from normalised values only."""
        state = CompassState()
        readouts = []
        for i, heading in enumerate([0.0, 5.0, 5.0, 400.0]):
            effects = reduce(state, sensor(heading, i * 100))
            readouts.extend(e.readout for e in of_type(effects, RenderReadout))

        assert [r.text for r in readouts] == ["0°", "5°", "5°", "40°"]
        assert [r.cardinal for r in readouts] == ["N", "N", "N", "NE"]
        assert all(r.mode == "Magnetic" for r in readouts)
        # The repeated 5° sample inside the heartbeat window is not logged
        assert [s.heading for s in state.log] == [40.0, 5.0, 0.0]
        assert state.last_raw_heading == pytest.approx(40.0)

    def test_needle_follows_smoothing(self):
        state = CompassState()
        reduce(state, sensor(0.0, 0))
        effects = reduce(state, sensor(5.0, 100))
        needle = of_type(effects, RenderNeedle)[0]
        assert needle.angle == pytest.approx(0.6)
        assert state.displayed_angle == pytest.approx(0.6)

    def test_first_sample_sets_needle_directly(self):
        state = CompassState()
        reduce(state, sensor(200.0, 0))
        assert state.displayed_angle == 200.0

    def test_events_inside_throttle_window_are_dropped(self):
        state = CompassState()
        reduce(state, sensor(10.0, 0))
        assert reduce(state, sensor(90.0, 10)) == []
        assert state.last_raw_heading == 10.0
        assert reduce(state, sensor(90.0, 15)) != []
        assert state.last_raw_heading == 90.0

    def test_dropped_event_does_not_move_throttle_reference(self):
        state = CompassState()
        reduce(state, sensor(10.0, 0))
        reduce(state, sensor(20.0, 10))
        assert state.last_sensor_at == at(0)

    def test_clock_stepping_backwards_does_not_stall_updates(self):
        state = CompassState()
        reduce(state, sensor(10.0, 0))
        earlier = T0 - timedelta(hours=1)
        accepted = 0
        for k in range(100):
            reading = PlatformCompassReading(float(20 + k), None)
            event_at = earlier + timedelta(milliseconds=20 * k)
            if reduce(state, SensorEvent(reading, event_at)):
                accepted += 1
        assert accepted == 100
        assert state.last_raw_heading == 119.0
        assert state.last_sensor_at == earlier + timedelta(milliseconds=20 * 99)

    def test_unusable_event_changes_nothing(self):
        state = CompassState()
        assert reduce(state, SensorEvent(None, T0)) == []
        assert state.last_sensor_at is None
        assert state.log == []

    def test_first_event_persists_log_and_sets_status(self):
        state = CompassState()
        effects = reduce(state, sensor(10.0, 0, accuracy=5))
        assert SetStatus("status.sensor") in effects
        assert PersistSnapshot() in effects
        assert of_type(effects, RenderLog)[0].entries == tuple(state.log)
        assert of_type(effects, RenderReadout)[0].readout.accuracy == "5°"

    def test_status_not_repeated(self):
        state = CompassState()
        reduce(state, sensor(10.0, 0))
        effects = reduce(state, sensor(11.0, 100))
        assert of_type(effects, SetStatus) == []

    def test_sensor_entries_use_north_mode(self):
        state = CompassState(use_true_north=True, declination=10.0)
        reduce(state, sensor(10.0, 0))
        assert state.log[0].source_mode == "true"
        # The raw heading is logged, not the corrected one
        assert state.log[0].heading == 10.0

    def test_generic_reading(self):
        state = CompassState()
        effects = reduce(state, SensorEvent(GenericOrientationReading(-45.0, True), T0))
        readout = of_type(effects, RenderReadout)[0].readout
        assert readout.text == "315°"
        assert readout.accuracy == "absolute"

    def test_heartbeat_entry_for_stationary_heading(self):
        state = CompassState()
        reduce(state, sensor(10.0, 0))
        reduce(state, sensor(10.0, 3000))
        assert len(state.log) == 1
        reduce(state, sensor(10.0, 3016))
        assert len(state.log) == 2

    def test_log_bound_holds(self):
        state = CompassState(settings=Settings(log_size=3))
        for i in range(10):
            reduce(state, sensor(i * 20.0, i * 100))
        assert len(state.log) == 3
        assert state.log[0].heading == 180.0

    def test_custom_pipeline_config(self):
        state = CompassState()
        config = PipelineConfig(smoothing=0.5, throttle_ms=100.0)
        reduce(state, sensor(0.0, 0), config)
        assert reduce(state, sensor(10.0, 50), config) == []
        reduce(state, sensor(10.0, 100), config)
        assert state.displayed_angle == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# Pointer simulation
# ---------------------------------------------------------------------------
class TestPointerEvents:

    def test_move_without_press_is_ignored(self):
        state = CompassState()
        assert reduce(state, PointerMove(EAST, T0)) == []
        assert state.last_raw_heading is None

    def test_move_with_buttons_held_counts_as_drag(self):
        state = CompassState()
        effects = reduce(state, PointerMove(EAST, T0, buttons_held=True))
        assert state.last_raw_heading == pytest.approx(90.0)
        assert SetStatus("status.simulated") in effects

    def test_drag_then_release_logs_simulated_entry(self):
        state = CompassState()
        reduce(state, PointerDown(at(0)))
        assert state.pointer_active is True

        effects = reduce(state, PointerMove(EAST, at(10)))
        readout = of_type(effects, RenderReadout)[0].readout
        assert readout.text == "90°"
        assert readout.accuracy == "simulated"
        # Moves alone never log
        assert state.log == []

        effects = reduce(state, PointerUp(at(20)))
        assert state.pointer_active is False
        assert PersistSnapshot() in effects
        assert state.log[0].heading == pytest.approx(90.0)
        assert state.log[0].source_mode == "simulated"

    def test_release_logs_even_without_change(self):
        state = CompassState()
        reduce(state, sensor(90.0, 0))
        reduce(state, PointerDown(at(10)))
        reduce(state, PointerUp(at(20)))
        assert [s.source_mode for s in state.log] == ["simulated", "magnetic"]

    def test_release_without_heading_does_nothing(self):
        state = CompassState()
        reduce(state, PointerDown(T0))
        assert reduce(state, PointerUp(T0)) == []
        assert state.log == []

    def test_double_click_logs_current_heading(self):
        state = CompassState()
        reduce(state, sensor(45.0, 0))
        reduce(state, PointerDoubleClick(at(100)))
        assert state.log[0].heading == 45.0
        assert state.log[0].source_mode == "simulated"

    def test_double_click_without_heading(self):
        assert reduce(CompassState(), PointerDoubleClick(T0)) == []


# ---------------------------------------------------------------------------
# Corrections and settings
# ---------------------------------------------------------------------------
class TestCorrections:

    @pytest.mark.parametrize("text, expected", [
        ("12.5", 12.5),
        (" -3 ", -3.0),
        ("0", 0.0),
    ])
    def test_parse_declination(self, text, expected):
        assert parse_declination(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "nan", "inf", "1,5", None, True])
    def test_parse_declination_rejects(self, text):
        assert parse_declination(text) is None

    def test_rejected_declination_keeps_value(self):
        state = CompassState(declination=4.0)
        effects = reduce(state, DeclinationSubmitted("abc"))
        assert effects == [DeclinationRejected("abc")]
        assert state.declination == 4.0

    def test_accepted_declination(self):
        state = CompassState()
        effects = reduce(state, DeclinationSubmitted("12.5"))
        assert state.declination == 12.5
        assert PersistSnapshot() in effects
        assert SetStatus("status.declination_set", {"value": 12.5}) in effects

    def test_declination_refreshes_readout_when_heading_known(self):
        state = CompassState(use_true_north=True)
        reduce(state, sensor(350.0, 0))
        effects = reduce(state, DeclinationSubmitted("15"))
        assert of_type(effects, RenderReadout)[0].readout.text == "5°"

    def test_true_north_toggle(self):
        state = CompassState(declination=15.0)
        reduce(state, sensor(350.0, 0))
        effects = reduce(state, TrueNorthToggled(True))
        readout = of_type(effects, RenderReadout)[0].readout
        assert readout.heading == pytest.approx(5.0)
        assert readout.mode == "True"
        assert SetStatus("status.true_north") in effects
        assert PersistSnapshot() in effects

        effects = reduce(state, TrueNorthToggled(False))
        assert of_type(effects, RenderReadout)[0].readout.mode == "Magnetic"
        assert SetStatus("status.magnetic_north") in effects

    def test_settings_applied_and_log_truncated(self):
        state = CompassState()
        log = HeadingLog(state)
        for i in range(4):
            log.record(i * 10.0, "magnetic", at(i))
        effects = reduce(state, SettingsSubmitted("mil", "12", "2"))
        assert state.settings == Settings(units="mil", tick_density=12, log_size=2)
        assert len(state.log) == 2
        assert RenderTicks(12) in effects
        assert PersistSnapshot() in effects
        assert SetStatus("status.settings_saved") in effects

    def test_invalid_settings_fall_back_to_defaults(self):
        state = CompassState(settings=Settings(units="mil", tick_density=8, log_size=5))
        reduce(state, SettingsSubmitted("furlongs", "abc", "-4"))
        assert state.settings == Settings()

    @pytest.mark.parametrize("tick_density, log_size, expected", [
        ("12.5", "20 entries", (12, 20)),
        (" 8", "+15", (8, 15)),
        (24.9, "0", (24, 100)),
        ("x12", None, (36, 100)),
    ])
    def test_settings_use_leading_integer(self, tick_density, log_size, expected):
        state = CompassState()
        reduce(state, SettingsSubmitted("deg", tick_density, log_size))
        assert (state.settings.tick_density, state.settings.log_size) == expected

    def test_settings_refresh_readout_units(self):
        state = CompassState()
        reduce(state, sensor(90.0, 0))
        effects = reduce(state, SettingsSubmitted("mil", 36, 100))
        assert of_type(effects, RenderReadout)[0].readout.text == "1600 mil"


# ---------------------------------------------------------------------------
# Log actions
# ---------------------------------------------------------------------------
class TestLogActions:

    def _state_with_log(self) -> CompassState:
        state = CompassState()
        log = HeadingLog(state)
        log.record(10.0, "magnetic", at(0))
        log.record(100.0, "magnetic", at(1000))
        return state

    def test_clear(self):
        state = self._state_with_log()
        effects = reduce(state, ClearLog())
        assert state.log == []
        assert RenderLog(()) in effects
        assert PersistSnapshot() in effects
        assert SetStatus("status.log_cleared") in effects

    def test_pin_moves_needle_without_persisting(self):
        state = self._state_with_log()
        state.displayed_angle = 0.0
        effects = reduce(state, PinLogEntry(0))
        assert state.displayed_angle == pytest.approx(12.0)
        assert RenderNeedle(state.displayed_angle) in effects
        assert SetStatus("status.pinned", {"heading": 100.0, "cardinal": "E"}) in effects
        assert PersistSnapshot() not in effects
        assert len(state.log) == 2

    def test_pin_missing_entry_is_ignored(self):
        state = self._state_with_log()
        assert reduce(state, PinLogEntry(5)) == []

    def test_export_empty_log(self):
        assert reduce(CompassState(), ExportLog(T0)) == [SetStatus("status.export_empty")]

    def test_export(self):
        state = self._state_with_log()
        effects = reduce(state, ExportLog(at(5000)))
        assert len(effects) == 1
        export = effects[0]
        assert isinstance(export, ExportCsv)
        assert export.at == at(5000)
        lines = export.content.split("\n")
        assert lines[0] == CSV_HEADER
        assert lines[1].startswith("2026-03-01T09:00:01.000Z,100,E,")


# ---------------------------------------------------------------------------
# Calibration sweep
# ---------------------------------------------------------------------------
class TestCalibration:
    """The sweep turns the needle once around without touching the heading."""

    def test_default_sweep(self):
        sweep = calibration_sweep()
        assert len(sweep) == 21
        assert sweep[0] == 18.0
        assert sweep[-1] == 378.0

    def test_sweep_ends_past_full_turn(self):
        assert calibration_sweep(100.0) == [100.0, 200.0, 300.0, 400.0]

    @pytest.mark.parametrize("step", [0.0, -18.0])
    def test_sweep_rejects_non_positive_step(self, step):
        with pytest.raises(ValueError):
            calibration_sweep(step)

    def test_full_sweep_restores_needle(self):
        state = CompassState()
        reduce(state, sensor(40.0, 0))

        assert reduce(state, StartCalibration()) == [SetStatus("status.calibrating")]
        assert state.calibrating is True

        angles = []
        for angle in calibration_sweep():
            effects = reduce(state, CalibrationStep(angle))
            angles.extend(e.angle for e in of_type(effects, RenderNeedle))
        assert len(angles) == 21
        assert angles[0] == 18.0
        assert angles[-1] == pytest.approx(18.0)
        assert all(0.0 <= a < 360.0 for a in angles)
        assert state.displayed_angle == 40.0

        effects = reduce(state, CalibrationFinished())
        assert effects == [RenderNeedle(40.0), SetStatus("status.calibration_done")]
        assert state.calibrating is False
        assert state.status == "status.calibration_done"

    def test_finish_without_heading_only_sets_status(self):
        state = CompassState()
        reduce(state, StartCalibration())
        assert reduce(state, CalibrationFinished()) == [SetStatus("status.calibration_done")]

    def test_second_start_is_ignored(self):
        state = CompassState()
        reduce(state, StartCalibration())
        assert reduce(state, StartCalibration()) == []

    def test_steps_outside_sweep_are_ignored(self):
        state = CompassState()
        assert reduce(state, CalibrationStep(90.0)) == []
        assert reduce(state, CalibrationFinished()) == []
        assert state.status == "status.waiting"

    def test_sensor_updates_during_sweep_keep_sweep_needle(self):
        state = CompassState()
        reduce(state, sensor(40.0, 0))
        reduce(state, StartCalibration())

        effects = reduce(state, sensor(50.0, 100))
        assert of_type(effects, RenderNeedle) == []
        assert of_type(effects, SetStatus) == []
        assert of_type(effects, RenderReadout)[0].readout.text == "50°"
        assert state.status == "status.calibrating"

        effects = reduce(state, CalibrationFinished())
        assert of_type(effects, RenderNeedle)[0].angle == pytest.approx(41.2)
        assert state.displayed_angle == pytest.approx(41.2)

        effects = reduce(state, sensor(50.0, 200))
        assert SetStatus("status.sensor") in effects


class TestUnknownEvent:

    def test_raises_type_error(self):
        with pytest.raises(TypeError):
            reduce(CompassState(), "north")
