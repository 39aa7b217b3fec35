"""Raw reading -> calibrated telemetry.

Everything in this module is pure: no I/O, no shared state. The store and
the controller call into it; the clock is injectable so results are
deterministic in tests.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pypedal._constants import (
    DEAD_ZONE_LIMIT,
    MAX_FORCE_LIMIT,
    NORMALIZED_MAX,
    SCALE_FACTOR,
    TEST_FORCE_LIMIT,
)
from pypedal.exceptions import PedalValidationError
from pypedal.models._base import utcnow
from pypedal.models.pedals import PedalChannel
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot, ValidationResult

Clock = Callable[[], float]
WallClock = Callable[[], datetime]


def _round_half_up(value: float) -> int:
    # round() is banker's rounding; 0.5 must always go up here.
    return int(math.floor(value + 0.5))


def calibrate(
    raw_reading: float,
    calibration: CalibrationConfig,
    *,
    clock: Clock = time.monotonic,
    wall_clock: WallClock = utcnow,
) -> TelemetrySnapshot:
    """Convert a raw sensor sample into a calibrated snapshot.

    1. ``magnitude = |raw| / SCALE_FACTOR`` (sensor units -> kg)
    2. subtract the dead zone (below it the force is zero)
    3. clamp to ``max_force``
    4. normalize to ``0..1023`` and derive the percentage

    The clamp in step 3 is what keeps ``value`` and ``percentage`` in range
    for any finite input.
    """
    magnitude = abs(raw_reading) / SCALE_FACTOR

    if magnitude < calibration.dead_zone:
        force = 0.0
    else:
        force = magnitude - calibration.dead_zone
    force = min(force, calibration.max_force)

    value = _round_half_up(force / calibration.max_force * NORMALIZED_MAX) if force > 0 else 0
    percentage = _round_half_up(value / NORMALIZED_MAX * 100)

    return TelemetrySnapshot(
        raw_reading=raw_reading,
        force=force,
        value=value,
        percentage=percentage,
        active=force > 0,
        timestamp=clock(),
        captured_at=wall_clock(),
    )


def reset_snapshot(*, clock: Clock = time.monotonic, wall_clock: WallClock = utcnow) -> TelemetrySnapshot:
    """Default snapshot: no reading, no force, inactive."""
    return TelemetrySnapshot(timestamp=clock(), captured_at=wall_clock())


# ------------------------------------------------------------------
# Input validation
# ------------------------------------------------------------------


def require_finite_number(value: Any, *, field: str) -> float:
    """Return *value* as a float or raise :class:`PedalValidationError`.

    ``bool`` is rejected even though it is an ``int`` subclass.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PedalValidationError(f"{field} must be a number, got {type(value).__name__}", field=field)
    number = float(value)
    if not math.isfinite(number):
        raise PedalValidationError(f"{field} must be finite, got {number}", field=field)
    return number


def validate_calibration_field(name: str, value: Any) -> float:
    """Check one calibration field (``max_force`` or ``dead_zone``) against its bound."""
    number = require_finite_number(value, field=name)
    if name == "max_force":
        if not 0 < number <= MAX_FORCE_LIMIT:
            raise PedalValidationError(f"max_force must be in (0, {MAX_FORCE_LIMIT}] kg, got {number}", field=name)
    elif name == "dead_zone":
        if not 0 <= number < DEAD_ZONE_LIMIT:
            raise PedalValidationError(f"dead_zone must be in [0, {DEAD_ZONE_LIMIT}) kg, got {number}", field=name)
    else:
        raise PedalValidationError(f"Unknown calibration field {name!r}", field=name)
    return number


def validate_calibration(
    *,
    max_force: Any = None,
    dead_zone: Any = None,
) -> dict[str, float]:
    """Check each supplied calibration field against its own bound.

    Returns the validated updates (only the supplied keys), ready for
    ``CalibrationConfig.model_copy(update=...)``.
    """
    supplied = {"max_force": max_force, "dead_zone": dead_zone}
    return {name: validate_calibration_field(name, value) for name, value in supplied.items() if value is not None}


def validate_test_force(force: Any) -> float:
    value = require_finite_number(force, field="force")
    if not 0 <= value <= TEST_FORCE_LIMIT:
        raise PedalValidationError(f"force must be in [0, {TEST_FORCE_LIMIT}] kg, got {value}", field="force")
    return value


def validate_state(snapshot: TelemetrySnapshot, calibration: CalibrationConfig) -> ValidationResult:
    """Range-check a snapshot and its calibration.

    Unlike :func:`validate_calibration` this never raises; it reports every
    problem found so health checks can surface them.
    """
    errors: list[str] = []

    if not 0 <= snapshot.value <= NORMALIZED_MAX:
        errors.append(f"value: {snapshot.value} is outside [0, {NORMALIZED_MAX}]")
    if not 0 <= snapshot.percentage <= 100:
        errors.append(f"percentage: {snapshot.percentage} is outside [0, 100]")
    if snapshot.force < 0:
        errors.append(f"force: {snapshot.force} is below minimum 0")
    if not 0 < calibration.max_force <= MAX_FORCE_LIMIT:
        errors.append(f"max_force: {calibration.max_force} is outside (0, {MAX_FORCE_LIMIT}]")
    if not 0 <= calibration.dead_zone < DEAD_ZONE_LIMIT:
        errors.append(f"dead_zone: {calibration.dead_zone} is outside [0, {DEAD_ZONE_LIMIT})")
    if calibration.dead_zone >= calibration.max_force:
        errors.append(
            f"dead_zone: {calibration.dead_zone} is not below max_force {calibration.max_force}",
        )

    return ValidationResult(is_valid=not errors, errors=errors)


# ------------------------------------------------------------------
# Inverse mappings
# ------------------------------------------------------------------


def force_to_raw_reading(force: float, calibration: CalibrationConfig) -> float:
    """Raw reading that :func:`calibrate` maps back to *force* (clamped to max_force)."""
    return (force + calibration.dead_zone) * SCALE_FACTOR


def channel_to_raw_reading(channel: PedalChannel, calibration: CalibrationConfig) -> float:
    """Express a board channel (0..1023 axis) as a raw reading.

    The board filters its own noise, so any non-zero axis value is a press.
    The dead zone is added back on top of the scaled force, which makes
    :func:`calibrate` return the board's axis unchanged: 0 stays inactive
    and 1023 is a full press.
    """
    if channel.value <= 0:
        return 0.0
    force = channel.value / NORMALIZED_MAX * calibration.max_force
    return (calibration.dead_zone + force) * SCALE_FACTOR
