"""Serial pedal-board reader.

Two layers, the same split as any threaded I/O client driven from asyncio:

* :class:`SerialRuntime` owns the blocking pyserial handle and a daemon
  thread that reads lines and hands them to the event loop with
  ``call_soon_threadsafe``.
* :class:`HardwareReader` lives on the event loop. It opens ports off-loop,
  parses lines, emits events to subscribers, and runs the reconnection
  policy (fixed delay, bounded attempts).

Cancellation works by state, not tokens: every explicit ``connect`` or
``disconnect`` bumps a session counter, and a retry scheduled under an older
session does nothing when it fires.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from typing import Protocol

import serial

from pypedal._constants import DEFAULT_BAUD_RATE, DEFAULT_MAX_RECONNECT_ATTEMPTS, DEFAULT_RECONNECT_DELAY
from pypedal.exceptions import PedalConflictError, PedalSerialError
from pypedal.models.pedals import PedalFrame
from pypedal.sources._base import ReadingCallback, ReadingFanout, Unsubscribe
from pypedal.sources.protocol import parse_pedal_line
from pypedal.state.events import RawReadingEvent, ReadingSource

_logger = logging.getLogger(__name__)

# readline() returns empty after this many seconds without data, which is
# how the reader thread notices a stop request.
_READ_TIMEOUT_S = 0.5
_JOIN_TIMEOUT_S = 2.0
# Board lines are under 100 bytes; a longer run without a newline is noise.
_MAX_LINE_BYTES = 4096


class SerialLink(Protocol):
    """The subset of :class:`serial.Serial` the reader uses."""

    @property
    def is_open(self) -> bool: ...

    def readline(self) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def close(self) -> None: ...


PortOpener = Callable[[str, int], SerialLink]


def open_serial_port(path: str, baud_rate: int) -> SerialLink:
    """Open *path* with 8 data bits, no parity, 1 stop bit and no flow control."""
    return serial.Serial(
        port=path,
        baudrate=baud_rate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=False,
        timeout=_READ_TIMEOUT_S,
    )


class SerialRuntime:
    """Daemon thread reading newline-delimited text from an open link."""

    def __init__(
        self,
        *,
        link: SerialLink,
        loop: asyncio.AbstractEventLoop,
        on_line: Callable[[SerialRuntime, str], None],
        on_closed: Callable[[SerialRuntime, BaseException | None], None],
        name: str = "pypedal-serial",
        logger: logging.Logger | None = None,
    ) -> None:
        self._link = link
        self._loop = loop
        self._on_line = on_line
        self._on_closed = on_closed
        self._name = name
        self._logger = logger or _logger
        self._stop_requested = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def link(self) -> SerialLink:
        return self._link

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_requested.is_set()

    def start(self) -> None:
        thread = threading.Thread(target=self._read_loop, name=self._name, daemon=True)
        self._thread = thread
        thread.start()
        self._logger.debug("Serial read loop started thread=%s", self._name)

    def stop(self, *, wait: bool = True) -> None:
        """Stop reading and close the link. Safe to call more than once."""
        self._stop_requested.set()
        try:
            self._link.close()
        except Exception:
            self._logger.debug("Serial close failed", exc_info=True)
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(_JOIN_TIMEOUT_S)
        self._logger.debug("Serial read loop stopped thread=%s", self._name)

    def _post(self, callback: Callable[..., None], *args: object) -> None:
        # The loop may already be closed during interpreter shutdown.
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(callback, self, *args)

    def _read_loop(self) -> None:
        error: BaseException | None = None
        # readline() hands back a partial line when the read timeout expires
        # mid-line; only newline-terminated data is posted.
        buffer = bytearray()
        try:
            while not self._stop_requested.is_set():
                if not self._link.is_open:
                    break
                raw = self._link.readline()
                if not raw:
                    continue
                buffer.extend(raw)
                while (end := buffer.find(b"\n")) >= 0:
                    chunk = bytes(buffer[:end])
                    del buffer[: end + 1]
                    line = chunk.decode("utf-8", errors="replace").strip()
                    if line:
                        self._post(self._on_line, line)
                if len(buffer) > _MAX_LINE_BYTES:
                    self._logger.debug("Dropping %d bytes without a line terminator", len(buffer))
                    buffer.clear()
        except Exception as exc:
            error = exc
        finally:
            if not self._stop_requested.is_set():
                self._post(self._on_closed, error)


class HardwareReader:
    """Pedal board connection with automatic reconnection.

    Parameters
    ----------
    opener
        Opens a port; defaults to :func:`open_serial_port`. Tests inject fakes.
    reconnect_delay
        Seconds between reconnection attempts.
    max_reconnect_attempts
        Attempts after an unexpected drop before ``on_unavailable`` fires.
    on_connected
        Called with the port path after every successful open (initial and
        reconnect).
    on_unavailable
        Called with the port path once reconnection attempts are exhausted.
    """

    def __init__(
        self,
        *,
        opener: PortOpener = open_serial_port,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        on_connected: Callable[[str], None] | None = None,
        on_unavailable: Callable[[str], None] | None = None,
    ) -> None:
        self._opener = opener
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._on_connected = on_connected
        self._on_unavailable = on_unavailable
        self._fanout = ReadingFanout(_logger)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runtime: SerialRuntime | None = None
        self._session = 0
        self._port: str | None = None
        self._baud_rate = DEFAULT_BAUD_RATE
        self._reconnect_attempts = 0
        self._retry_handle: asyncio.TimerHandle | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._last_frame: PedalFrame | None = None
        self._lines_received = 0
        self._lines_discarded = 0

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._runtime is not None

    @property
    def is_running(self) -> bool:
        """Connected, or between reconnection attempts."""
        return self.is_connected or self.is_reconnecting

    @property
    def is_reconnecting(self) -> bool:
        return self._retry_handle is not None or (self._retry_task is not None and not self._retry_task.done())

    @property
    def port(self) -> str | None:
        return self._port

    @property
    def baud_rate(self) -> int:
        return self._baud_rate

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def last_frame(self) -> PedalFrame | None:
        return self._last_frame

    @property
    def lines_received(self) -> int:
        return self._lines_received

    @property
    def lines_discarded(self) -> int:
        return self._lines_discarded

    def subscribe(self, callback: ReadingCallback) -> Unsubscribe:
        return self._fanout.subscribe(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, path: str, baud_rate: int = DEFAULT_BAUD_RATE) -> None:
        """Open *path* and start reading.

        Raises
        ------
        PedalConflictError
            If a connection (or reconnection cycle) is already active.
        PedalSerialError
            If the port cannot be opened. No retry is scheduled for a failed
            explicit connect; the caller decides what to do.
        """
        if self.is_running:
            raise PedalConflictError(f"Already connected to {self._port}")
        self._loop = asyncio.get_running_loop()
        self._session += 1
        session = self._session
        self._port = path
        self._baud_rate = baud_rate
        self._reconnect_attempts = 0

        _logger.info("Connecting to serial port %s at %d baud", path, baud_rate)
        link = await self._open(path, baud_rate)
        if session != self._session:
            await self._close_link(link)
            raise PedalSerialError(f"Connection to {path} was cancelled", port=path)
        self._start_runtime(link)

    async def disconnect(self) -> bool:
        """Close the port and cancel any pending reconnection.

        Idempotent. Returns ``True`` if there was anything to tear down.
        """
        was_active = self.is_running
        self._session += 1
        self._cancel_retry()

        retry_task = self._retry_task
        self._retry_task = None
        if retry_task is not None and retry_task is not asyncio.current_task() and not retry_task.done():
            retry_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await retry_task

        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            await asyncio.get_running_loop().run_in_executor(None, runtime.stop)

        self._reconnect_attempts = 0
        self._last_frame = None
        if was_active:
            _logger.info("Serial port %s closed", self._port)
        return was_active

    async def send_command(self, command: str) -> None:
        """Write a newline-terminated command to the board."""
        runtime = self._runtime
        if runtime is None:
            raise PedalSerialError("No serial connection to send the command on", port=self._port or "")
        data = f"{command}\n".encode()
        try:
            await asyncio.get_running_loop().run_in_executor(None, runtime.link.write, data)
        except (serial.SerialException, OSError) as exc:
            raise PedalSerialError(f"Write to {self._port} failed: {exc}", port=self._port or "") from exc
        _logger.debug("Command sent to %s: %s", self._port, command)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open(self, path: str, baud_rate: int) -> SerialLink:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._opener, path, baud_rate)
        except (serial.SerialException, OSError, ValueError) as exc:
            raise PedalSerialError(f"Could not open {path}: {exc}", port=path) from exc

    async def _close_link(self, link: SerialLink) -> None:
        try:
            await asyncio.get_running_loop().run_in_executor(None, link.close)
        except Exception:
            _logger.debug("Closing abandoned serial link failed", exc_info=True)

    def _start_runtime(self, link: SerialLink) -> None:
        assert self._loop is not None  # noqa: S101
        runtime = SerialRuntime(
            link=link,
            loop=self._loop,
            on_line=self._handle_line,
            on_closed=self._handle_closed,
            name=f"pypedal-serial[{self._port}]",
            logger=_logger,
        )
        runtime.start()
        self._runtime = runtime
        self._reconnect_attempts = 0
        _logger.info("Serial connection established port=%s baud=%d", self._port, self._baud_rate)
        if self._on_connected is not None and self._port is not None:
            self._on_connected(self._port)

    def _handle_line(self, runtime: SerialRuntime, line: str) -> None:
        # Lines queued by a runtime that has since been replaced are stale.
        if runtime is not self._runtime:
            return
        self._lines_received += 1
        frame = parse_pedal_line(line)
        if frame is None:
            self._lines_discarded += 1
            return
        self._last_frame = frame
        self._fanout.emit(RawReadingEvent(source=ReadingSource.HARDWARE, frame=frame))

    def _handle_closed(self, runtime: SerialRuntime, error: BaseException | None) -> None:
        if runtime is not self._runtime:
            return
        self._runtime = None
        runtime.stop(wait=False)
        if error is not None:
            _logger.warning("Serial port %s error: %s", self._port, error)
        else:
            _logger.warning("Serial port %s closed unexpectedly", self._port)
        self._schedule_reconnect(self._session)

    def _schedule_reconnect(self, session: int) -> None:
        if session != self._session or self._loop is None:
            return
        if self._reconnect_attempts >= self._max_reconnect_attempts:
            _logger.warning(
                "Serial port %s unavailable after %d reconnection attempt(s)",
                self._port,
                self._reconnect_attempts,
            )
            if self._on_unavailable is not None and self._port is not None:
                self._on_unavailable(self._port)
            return
        self._reconnect_attempts += 1
        _logger.info(
            "Reconnecting to %s (%d/%d) in %.1fs",
            self._port,
            self._reconnect_attempts,
            self._max_reconnect_attempts,
            self._reconnect_delay,
        )
        self._retry_handle = self._loop.call_later(self._reconnect_delay, self._spawn_retry, session)

    def _spawn_retry(self, session: int) -> None:
        self._retry_handle = None
        if session != self._session or self._loop is None:
            return
        self._retry_task = self._loop.create_task(self._retry(session), name="pypedal-serial-retry")

    async def _retry(self, session: int) -> None:
        path = self._port
        if path is None:
            return
        try:
            link = await self._open(path, self._baud_rate)
        except PedalSerialError as exc:
            _logger.debug("Reconnection attempt failed: %s", exc)
            self._schedule_reconnect(session)
            return
        if session != self._session:
            await self._close_link(link)
            return
        self._start_runtime(link)

    def _cancel_retry(self) -> None:
        handle = self._retry_handle
        self._retry_handle = None
        if handle is not None:
            handle.cancel()
