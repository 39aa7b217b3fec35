from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pypedal.models.pedals import PedalChannel, PedalFrame, PedalStatus
from pypedal.models.telemetry import CalibrationConfig
from pypedal.state.events import RawReadingEvent, ReadingSource
from pypedal.state.store import TelemetryStore


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _frame(brake_value: int, brake_percentage: int) -> PedalFrame:
    return PedalFrame(
        throttle=PedalChannel.from_reading(0, 0),
        brake=PedalChannel.from_reading(brake_value, brake_percentage),
        clutch=PedalChannel.from_reading(0, 0),
        status=PedalStatus.BRAKING,
        captured_at=_dt(),
    )


def test_apply_replaces_snapshot_and_counts_versions() -> None:
    store = TelemetryStore(CalibrationConfig(max_force=5.0, dead_zone=1.0))
    first = store.snapshot

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=3_000_000.0))

    assert store.snapshot is snapshot
    assert snapshot is not first
    assert snapshot.value == 409
    assert store.version == 1
    assert store.last_source is ReadingSource.MANUAL


def test_hardware_event_derives_reading_from_brake_channel() -> None:
    store = TelemetryStore(CalibrationConfig(max_force=5.0, dead_zone=0.0))

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.HARDWARE, frame=_frame(512, 50)))

    assert snapshot.value == 512
    assert snapshot.active is True
    assert store.frame is not None
    assert store.frame.status is PedalStatus.BRAKING
    assert store.last_source is ReadingSource.HARDWARE


def test_light_hardware_press_stays_active_with_default_dead_zone() -> None:
    store = TelemetryStore()

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.HARDWARE, frame=_frame(100, 10)))

    assert snapshot.value == 100
    assert snapshot.percentage == 10
    assert snapshot.active is True


def test_full_hardware_press_reads_full_scale_with_default_dead_zone() -> None:
    store = TelemetryStore()

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.HARDWARE, frame=_frame(1023, 100)))

    assert snapshot.value == 1023
    assert snapshot.percentage == 100
    assert snapshot.force == pytest.approx(5.0)


def test_released_hardware_brake_is_inactive() -> None:
    store = TelemetryStore()

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.HARDWARE, frame=_frame(0, 0)))

    assert snapshot.force == 0.0
    assert snapshot.active is False


def test_configure_keeps_force_but_restamps_timestamp() -> None:
    clock = _Clock()
    store = TelemetryStore(clock=clock)
    applied = store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=3_000_000.0))

    clock.now = 105.0
    calibration = store.configure(max_force=10.0)

    assert calibration.max_force == 10.0
    assert calibration.dead_zone == 1.0
    assert store.snapshot.force == applied.force
    assert store.snapshot.value == applied.value
    assert store.snapshot.timestamp == 105.0


def test_new_calibration_applies_to_next_reading() -> None:
    store = TelemetryStore()
    store.configure(max_force=10.0, dead_zone=0.0)

    snapshot = store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=5_000_000.0))

    assert snapshot.force == pytest.approx(5.0)
    assert snapshot.percentage == 50


def test_reset_is_idempotent_and_preserves_calibration() -> None:
    clock = _Clock()
    store = TelemetryStore(clock=clock)
    store.configure(max_force=8.0, dead_zone=0.5)
    store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=4_000_000.0))

    first = store.reset()
    clock.now = 200.0
    second = store.reset()

    ignore = {"timestamp", "captured_at"}
    assert first.model_dump(exclude=ignore) == second.model_dump(exclude=ignore)
    assert second.force == 0.0
    assert second.active is False
    assert second.timestamp == 200.0
    assert store.calibration == CalibrationConfig(max_force=8.0, dead_zone=0.5)


def test_clear_frame_forgets_board_data() -> None:
    store = TelemetryStore()
    store.apply(RawReadingEvent(source=ReadingSource.HARDWARE, frame=_frame(512, 50)))

    store.clear_frame()

    assert store.frame is None


def test_event_requires_reading_or_frame() -> None:
    with pytest.raises(ValueError):
        RawReadingEvent(source=ReadingSource.MANUAL)
