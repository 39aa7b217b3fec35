"""Synthetic brake signal for running without a pedal board."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import random
import time
from collections.abc import Callable

from pypedal._constants import (
    DEFAULT_SIMULATION_INTERVAL,
    SIMULATION_AMPLITUDE,
    SIMULATION_BASELINE,
    SIMULATION_NOISE,
    SIMULATION_PERIOD,
)
from pypedal.exceptions import PedalConflictError
from pypedal.sources._base import ReadingCallback, ReadingFanout, Unsubscribe
from pypedal.state.events import RawReadingEvent, ReadingSource

_logger = logging.getLogger(__name__)


class SimulatedGenerator:
    """Emits one synthetic raw reading per tick.

    The waveform is ``baseline + amplitude * sin(2*pi*t/period)`` plus
    uniform jitter of width ``noise``, in raw sensor units.
    """

    def __init__(
        self,
        *,
        interval: float = DEFAULT_SIMULATION_INTERVAL,
        baseline: float = SIMULATION_BASELINE,
        amplitude: float = SIMULATION_AMPLITUDE,
        period: float = SIMULATION_PERIOD,
        noise: float = SIMULATION_NOISE,
        clamp_non_negative: bool = True,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self._interval = interval
        self._baseline = baseline
        self._amplitude = amplitude
        self._period = period
        self._noise = noise
        self._clamp_non_negative = clamp_non_negative
        self._rng = rng or random.Random()
        self._clock = clock
        self._fanout = ReadingFanout(_logger)
        self._task: asyncio.Task[None] | None = None
        self._started_at = 0.0
        self._ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def ticks(self) -> int:
        """Readings emitted since the last start."""
        return self._ticks

    def subscribe(self, callback: ReadingCallback) -> Unsubscribe:
        return self._fanout.subscribe(callback)

    def sample(self, elapsed: float) -> float:
        """Raw reading for *elapsed* seconds into the waveform."""
        oscillation = self._amplitude * math.sin(2 * math.pi * elapsed / self._period)
        jitter = (self._rng.random() - 0.5) * self._noise
        reading = self._baseline + oscillation + jitter
        if self._clamp_non_negative:
            reading = max(0.0, reading)
        return reading

    def tick(self) -> RawReadingEvent:
        """Compute and emit one reading."""
        event = RawReadingEvent(
            source=ReadingSource.SIMULATION,
            raw_reading=self.sample(self._clock() - self._started_at),
        )
        self._ticks += 1
        self._fanout.emit(event)
        return event

    def start(self) -> None:
        """Start ticking on the running event loop.

        Raises
        ------
        PedalConflictError
            If the generator is already running.
        """
        if self.is_running:
            raise PedalConflictError("Simulation is already running")
        self._started_at = self._clock()
        self._ticks = 0
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pypedal-simulation")
        _logger.info("Simulation started interval=%.3fs", self._interval)

    async def stop(self) -> None:
        """Stop ticking. No tick runs after this returns.

        Raises
        ------
        PedalConflictError
            If the generator is not running.
        """
        task = self._task
        if task is None or task.done():
            self._task = None
            raise PedalConflictError("Simulation is not running")
        self._task = None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.info("Simulation stopped after %d ticks", self._ticks)

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._interval)
