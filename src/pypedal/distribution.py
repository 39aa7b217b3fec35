"""Polling and streaming access to the current snapshot.

Streaming is a sampling fan-out: each subscriber has its own timer that
reads whatever snapshot is current when it fires. There is no one-to-one
relation between source readings and pushes, and a slow source never
delays a push.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime

from pypedal._constants import DEFAULT_STREAM_INTERVAL
from pypedal.models._base import utcnow
from pypedal.models.state import ControllerMode, StreamFrame
from pypedal.models.telemetry import TelemetrySnapshot
from pypedal.state.store import TelemetryStore

_logger = logging.getLogger(__name__)


class TelemetryBroadcaster:
    def __init__(
        self,
        store: TelemetryStore,
        *,
        mode: Callable[[], ControllerMode],
        interval: float = DEFAULT_STREAM_INTERVAL,
        wall_clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._store = store
        self._mode = mode
        self._interval = interval
        self._wall_clock = wall_clock
        self._subscribers = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def subscriber_count(self) -> int:
        """Streams currently open."""
        return self._subscribers

    def get_telemetry(self) -> TelemetrySnapshot:
        return self._store.snapshot

    def frame(self) -> StreamFrame:
        mode = self._mode()
        return StreamFrame(
            brake=self._store.snapshot,
            mode=mode,
            is_simulating=mode == ControllerMode.SIMULATION_ACTIVE,
            sent_at=self._wall_clock(),
        )

    async def subscribe(self, interval: float | None = None) -> AsyncIterator[StreamFrame]:
        """Yield a frame immediately, then one every *interval* seconds, forever.

        Closing the generator (``aclose()``, or cancelling the consuming
        task) stops its timer at once.
        """
        period = self._interval if interval is None else interval
        if period <= 0:
            raise ValueError(f"interval must be positive, got {period}")
        self._subscribers += 1
        _logger.debug("Stream subscriber added interval=%.3fs total=%d", period, self._subscribers)
        try:
            while True:
                yield self.frame()
                await asyncio.sleep(period)
        finally:
            self._subscribers -= 1
            _logger.debug("Stream subscriber removed total=%d", self._subscribers)
