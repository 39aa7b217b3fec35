"""Subscription plumbing shared by every signal source."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable

from pypedal.state.events import RawReadingEvent

ReadingCallback = Callable[[RawReadingEvent], None]
Unsubscribe = Callable[[], None]


class ReadingFanout:
    """List of subscribers with explicit unsubscribe handles.

    Callbacks run on the event loop thread, in subscription order. A failing
    callback is logged and does not stop delivery to the others.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._callbacks: list[ReadingCallback] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: ReadingCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._callbacks.remove(callback)

        return _unsubscribe

    def emit(self, event: RawReadingEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:
                self._logger.debug("Reading subscriber failed source=%s", event.source, exc_info=True)
