from __future__ import annotations

import asyncio
import queue
import time
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
import serial


class FakeSerialLink:
    """In-memory stand-in for an open :class:`serial.Serial`.

    ``readline`` is called from the reader thread, so lines travel through a
    thread-safe queue.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.is_open = True
        self.written: list[bytes] = []
        self._incoming: queue.Queue[bytes | Exception] = queue.Queue()

    def feed(self, line: str) -> None:
        self._incoming.put(f"{line}\r\n".encode())

    def feed_bytes(self, data: bytes) -> None:
        """Queue *data* as one read result, newline or not."""
        self._incoming.put(data)

    def fail(self, error: Exception | None = None) -> None:
        """Make the next read raise, as an unplugged USB adapter does."""
        self._incoming.put(error or serial.SerialException("device disconnected"))

    def readline(self) -> bytes:
        try:
            item = self._incoming.get(timeout=0.02)
        except queue.Empty:
            return b""
        if isinstance(item, Exception):
            raise item
        return item

    def write(self, data: bytes) -> int:
        self.written.append(data)
        return len(data)

    def close(self) -> None:
        self.is_open = False


class FakeOpener:
    """Port opener that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self.links: list[FakeSerialLink] = []
        self.failing = False

    def __call__(self, path: str, baud_rate: int) -> FakeSerialLink:
        self.calls.append((path, baud_rate))
        if self.failing:
            raise serial.SerialException(f"could not open port {path}")
        link = FakeSerialLink(path)
        self.links.append(link)
        return link

    @property
    def last_link(self) -> FakeSerialLink:
        return self.links[-1]


def fake_port(
    device: str,
    *,
    manufacturer: str | None = None,
    vid: int | None = None,
    pid: int | None = None,
    description: str | None = None,
) -> Any:
    """Object shaped like pyserial's ``ListPortInfo``."""
    return SimpleNamespace(device=device, manufacturer=manufacturer, vid=vid, pid=pid, description=description)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


BRAKING_LINE = "Acel: 0/1023 (0%) | Freno: 512/1023 (50%) | Clutch: 0/1023 (0%) | FRENANDO"


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()
