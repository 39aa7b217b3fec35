"""In-memory telemetry store.

This is the only component allowed to replace the current snapshot.
Snapshots are immutable and swapped by reference, so a reader always sees
either the previous or the next value, never a half-written one.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime

from pypedal.calibration import calibrate, channel_to_raw_reading, reset_snapshot
from pypedal.models._base import utcnow
from pypedal.models.pedals import PedalFrame
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot
from pypedal.state.events import RawReadingEvent, ReadingSource

_logger = logging.getLogger(__name__)


class TelemetryStore:
    """Holds the latest snapshot, the calibration, and the latest board frame."""

    def __init__(
        self,
        calibration: CalibrationConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._clock = clock
        self._wall_clock = wall_clock
        self._calibration = calibration or CalibrationConfig()
        self._snapshot = reset_snapshot(clock=clock, wall_clock=wall_clock)
        self._frame: PedalFrame | None = None
        self._last_source: ReadingSource | None = None
        self._version = 0

    @property
    def snapshot(self) -> TelemetrySnapshot:
        return self._snapshot

    @property
    def calibration(self) -> CalibrationConfig:
        return self._calibration

    @property
    def frame(self) -> PedalFrame | None:
        """Latest three-pedal frame received from the board, if any."""
        return self._frame

    @property
    def last_source(self) -> ReadingSource | None:
        return self._last_source

    @property
    def version(self) -> int:
        """Incremented on every snapshot replacement."""
        return self._version

    def _replace(self, snapshot: TelemetrySnapshot) -> TelemetrySnapshot:
        self._snapshot = snapshot
        self._version += 1
        return snapshot

    def apply(self, event: RawReadingEvent) -> TelemetrySnapshot:
        """Calibrate an event's reading and make it the current snapshot."""
        raw_reading = event.raw_reading
        if event.frame is not None:
            self._frame = event.frame
            if raw_reading is None:
                raw_reading = channel_to_raw_reading(event.frame.brake, self._calibration)
        assert raw_reading is not None  # noqa: S101 - guaranteed by RawReadingEvent

        self._last_source = event.source
        return self._replace(
            calibrate(raw_reading, self._calibration, clock=self._clock, wall_clock=self._wall_clock),
        )

    def configure(self, **updates: float) -> CalibrationConfig:
        """Replace the calibration with validated *updates*.

        The current snapshot keeps its force/value (they change with the
        next reading) but gets a fresh timestamp.
        """
        self._calibration = self._calibration.model_copy(update=updates)
        self._replace(
            self._snapshot.model_copy(update={"timestamp": self._clock(), "captured_at": self._wall_clock()}),
        )
        _logger.debug(
            "Calibration updated max_force=%s dead_zone=%s",
            self._calibration.max_force,
            self._calibration.dead_zone,
        )
        return self._calibration

    def reset(self) -> TelemetrySnapshot:
        """Replace the snapshot with defaults; the calibration is kept."""
        return self._replace(reset_snapshot(clock=self._clock, wall_clock=self._wall_clock))

    def clear_frame(self) -> None:
        self._frame = None
