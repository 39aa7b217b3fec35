from __future__ import annotations

import math

import pytest

from pypedal._constants import SCALE_FACTOR
from pypedal.calibration import (
    _round_half_up,
    calibrate,
    channel_to_raw_reading,
    force_to_raw_reading,
    require_finite_number,
    validate_calibration,
    validate_calibration_field,
    validate_state,
    validate_test_force,
)
from pypedal.exceptions import PedalValidationError
from pypedal.models.pedals import PedalChannel
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot

_DEFAULT = CalibrationConfig(max_force=5.0, dead_zone=1.0)


def _raw(magnitude_kg: float) -> float:
    return magnitude_kg * SCALE_FACTOR


def test_force_above_dead_zone_is_normalized() -> None:
    snapshot = calibrate(_raw(3.0), _DEFAULT)

    assert snapshot.force == pytest.approx(2.0)
    assert snapshot.value == 409  # round(2 / 5 * 1023)
    assert snapshot.percentage == 40
    assert snapshot.active is True
    assert snapshot.raw_reading == _raw(3.0)


def test_reading_inside_dead_zone_is_zeroed() -> None:
    snapshot = calibrate(_raw(0.5), _DEFAULT)

    assert snapshot.force == 0.0
    assert snapshot.value == 0
    assert snapshot.percentage == 0
    assert snapshot.active is False


def test_force_is_clamped_to_max_force() -> None:
    snapshot = calibrate(_raw(100.0), _DEFAULT)

    assert snapshot.force == 5.0
    assert snapshot.value == 1023
    assert snapshot.percentage == 100


def test_negative_readings_use_their_magnitude() -> None:
    positive = calibrate(_raw(3.0), _DEFAULT)
    negative = calibrate(-_raw(3.0), _DEFAULT)

    assert negative.force == positive.force
    assert negative.value == positive.value
    assert negative.raw_reading == -_raw(3.0)


def test_magnitude_equal_to_dead_zone_is_inactive() -> None:
    snapshot = calibrate(_raw(1.0), _DEFAULT)

    assert snapshot.force == 0.0
    assert snapshot.active is False


@pytest.mark.parametrize("raw_reading", [0.0, 1.0, -7.5e5, 999_999.0, 2.5e6, 6e6, 8388607.0, -1e12, 1e300])
def test_output_stays_in_range_for_any_finite_reading(raw_reading: float) -> None:
    calibration = CalibrationConfig(max_force=2.5, dead_zone=0.3)
    snapshot = calibrate(raw_reading, calibration)

    assert 0.0 <= snapshot.force <= calibration.max_force
    assert 0 <= snapshot.value <= 1023
    assert 0 <= snapshot.percentage <= 100
    assert snapshot.active is (snapshot.force > 0)


def test_half_values_round_up() -> None:
    assert _round_half_up(0.5) == 1
    assert _round_half_up(2.5) == 3
    assert _round_half_up(2.49) == 2


def test_clocks_are_injectable() -> None:
    snapshot = calibrate(_raw(2.0), _DEFAULT, clock=lambda: 42.0)

    assert snapshot.timestamp == 42.0
    assert snapshot.captured_at.tzinfo is not None


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def test_validate_calibration_returns_only_supplied_fields() -> None:
    assert validate_calibration(max_force=10) == {"max_force": 10.0}
    assert validate_calibration(dead_zone=0) == {"dead_zone": 0.0}
    assert validate_calibration() == {}


@pytest.mark.parametrize(
    ("kwargs", "field"),
    [
        ({"max_force": 60}, "max_force"),
        ({"max_force": 0}, "max_force"),
        ({"max_force": -1.0}, "max_force"),
        ({"max_force": math.inf}, "max_force"),
        ({"max_force": "5"}, "max_force"),
        ({"dead_zone": 10}, "dead_zone"),
        ({"dead_zone": -0.1}, "dead_zone"),
        ({"dead_zone": math.nan}, "dead_zone"),
        ({"max_force": 5, "dead_zone": True}, "dead_zone"),
    ],
)
def test_validate_calibration_rejects_out_of_bounds(kwargs: dict[str, object], field: str) -> None:
    with pytest.raises(PedalValidationError) as excinfo:
        validate_calibration(**kwargs)  # type: ignore[arg-type]

    assert excinfo.value.field == field


def test_require_finite_number_rejects_bool_and_strings() -> None:
    assert require_finite_number(3, field="x") == 3.0
    with pytest.raises(PedalValidationError):
        require_finite_number(True, field="x")
    with pytest.raises(PedalValidationError):
        require_finite_number("12", field="x")
    with pytest.raises(PedalValidationError):
        require_finite_number(None, field="x")


def test_validate_test_force_bounds() -> None:
    assert validate_test_force(0) == 0.0
    assert validate_test_force(50) == 50.0
    with pytest.raises(PedalValidationError):
        validate_test_force(50.5)
    with pytest.raises(PedalValidationError):
        validate_test_force(-1)


def test_validate_state_accepts_default_snapshot() -> None:
    result = validate_state(TelemetrySnapshot(), _DEFAULT)

    assert result.is_valid is True
    assert result.errors == []


def test_validate_state_reports_dead_zone_not_below_max_force() -> None:
    calibration = CalibrationConfig(max_force=2.0, dead_zone=3.0)

    result = validate_state(TelemetrySnapshot(), calibration)

    assert result.is_valid is False
    assert len(result.errors) == 1
    assert result.errors[0].startswith("dead_zone")


def test_validate_state_reports_every_out_of_range_field() -> None:
    snapshot = TelemetrySnapshot.model_construct(force=-1.0, value=2000, percentage=150)

    result = validate_state(snapshot, _DEFAULT)

    assert result.is_valid is False
    assert [error.split(":")[0] for error in result.errors] == ["value", "percentage", "force"]


# ------------------------------------------------------------------
# Inverse mappings
# ------------------------------------------------------------------


def test_force_to_raw_reading_inverts_calibrate() -> None:
    raw_reading = force_to_raw_reading(2.0, _DEFAULT)

    assert raw_reading == 3_000_000.0
    assert calibrate(raw_reading, _DEFAULT).force == pytest.approx(2.0)


def test_channel_to_raw_reading_preserves_the_board_axis_without_dead_zone() -> None:
    calibration = CalibrationConfig(max_force=5.0, dead_zone=0.0)
    channel = PedalChannel.from_reading(512, 50)

    snapshot = calibrate(channel_to_raw_reading(channel, calibration), calibration)

    assert snapshot.value == 512
    assert snapshot.percentage == 50
    assert snapshot.active is True


@pytest.mark.parametrize(
    ("axis", "percentage", "active"),
    [(1023, 100, True), (512, 50, True), (200, 20, True), (1, 0, True), (0, 0, False)],
)
def test_channel_to_raw_reading_spans_the_full_axis_with_default_dead_zone(
    axis: int, percentage: int, active: bool
) -> None:
    channel = PedalChannel.from_reading(axis, percentage)

    snapshot = calibrate(channel_to_raw_reading(channel, _DEFAULT), _DEFAULT)

    assert snapshot.value == axis
    assert snapshot.percentage == percentage
    assert snapshot.active is active


def test_full_board_press_reaches_max_force() -> None:
    channel = PedalChannel.from_reading(1023, 100)

    snapshot = calibrate(channel_to_raw_reading(channel, _DEFAULT), _DEFAULT)

    assert snapshot.force == pytest.approx(_DEFAULT.max_force)
    assert channel_to_raw_reading(PedalChannel.from_reading(0, 0), _DEFAULT) == 0.0


def test_validate_calibration_field_checks_one_field() -> None:
    assert validate_calibration_field("max_force", 50) == 50.0
    assert validate_calibration_field("dead_zone", 9.99) == 9.99
    with pytest.raises(PedalValidationError):
        validate_calibration_field("gain", 1.0)
