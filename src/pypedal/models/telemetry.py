"""Calibrated brake telemetry models."""

from __future__ import annotations

from pydantic import Field

from pypedal._constants import (
    DEAD_ZONE_LIMIT,
    DEFAULT_DEAD_ZONE,
    DEFAULT_MAX_FORCE,
    MAX_FORCE_LIMIT,
    NORMALIZED_MAX,
    SENSOR_TYPE,
)
from pypedal.models._base import PedalBaseModel, UtcDatetime, utcnow


class CalibrationConfig(PedalBaseModel):
    """Linear calibration applied to every raw reading.

    Survives snapshot replacement and :meth:`~pypedal.controller.PedalController.reset`.
    ``dead_zone < max_force`` is not enforced here; a violation is reported by
    :func:`pypedal.calibration.validate_state`.
    """

    max_force: float = Field(default=DEFAULT_MAX_FORCE, gt=0, le=MAX_FORCE_LIMIT, allow_inf_nan=False)
    """Upper force clamp and normalization denominator, in kg."""

    dead_zone: float = Field(default=DEFAULT_DEAD_ZONE, ge=0, lt=DEAD_ZONE_LIMIT, allow_inf_nan=False)
    """Force below this is zeroed, in kg."""


class TelemetrySnapshot(PedalBaseModel):
    """One calibrated reading. Superseded by the next one, never edited."""

    raw_reading: float = 0.0
    """Sensor-native sample the snapshot was computed from (unbounded)."""

    force: float = Field(default=0.0, ge=0)
    """Force in kg after dead-zone subtraction, clamped to ``max_force``."""

    value: int = Field(default=0, ge=0, le=NORMALIZED_MAX)
    """Normalized joystick-style axis value."""

    percentage: int = Field(default=0, ge=0, le=100)

    active: bool = False
    """``True`` iff force remained after dead-zone subtraction."""

    timestamp: float = 0.0
    """Monotonic capture time."""

    captured_at: UtcDatetime = Field(default_factory=utcnow)
    """Wall-clock capture time."""

    sensor_type: str = SENSOR_TYPE


class ValidationResult(PedalBaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
