"""Mode controller: decides which signal source drives the telemetry store."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable
from datetime import datetime
from typing import Any

from serial.tools import list_ports

from pypedal.calibration import (
    force_to_raw_reading,
    require_finite_number,
    validate_calibration,
    validate_state,
    validate_test_force,
)
from pypedal.config import PedalConfig
from pypedal.distribution import TelemetryBroadcaster
from pypedal.exceptions import PedalConflictError, PedalSerialError, PedalValidationError
from pypedal.models._base import utcnow
from pypedal.models.pedals import PedalFrame
from pypedal.models.ports import SerialPortInfo
from pypedal.models.state import ConnectionState, ControllerMode, FullState, HealthReport, StreamFrame
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot
from pypedal.sources._base import Unsubscribe
from pypedal.sources.hardware import HardwareReader, PortOpener, open_serial_port
from pypedal.sources.ports import PortEnumerator, discover_ports, list_serial_ports
from pypedal.sources.simulator import SimulatedGenerator
from pypedal.state.events import RawReadingEvent, ReadingSource
from pypedal.state.store import TelemetryStore

_logger = logging.getLogger(__name__)

_HARDWARE_MODES = frozenset({ControllerMode.CONNECTING_HARDWARE, ControllerMode.HARDWARE_ACTIVE})


class PedalController:
    """Owns the store, both signal sources and the streaming fan-out.

    At most one source is subscribed to the store at any time. Every mode
    switch runs under one lock, and the outgoing source is fully stopped
    (task awaited or thread joined, subscription removed) before the
    incoming one starts.

    Usage::

        async with PedalController(PedalConfig.from_env()) as controller:
            snapshot = controller.get_telemetry()
    """

    def __init__(
        self,
        config: PedalConfig | None = None,
        *,
        simulator: SimulatedGenerator | None = None,
        opener: PortOpener = open_serial_port,
        port_enumerator: PortEnumerator = list_ports.comports,
        discovery_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or PedalConfig()
        self._clock = clock
        self._store = TelemetryStore(
            CalibrationConfig(max_force=self._config.max_force, dead_zone=self._config.dead_zone),
            clock=clock,
        )
        self._simulator = simulator or SimulatedGenerator(interval=self._config.simulation_interval)
        self._hardware = HardwareReader(
            opener=opener,
            reconnect_delay=self._config.reconnect_delay,
            max_reconnect_attempts=self._config.max_reconnect_attempts,
            on_connected=self._on_hardware_connected,
            on_unavailable=self._on_hardware_unavailable,
        )
        self._broadcaster = TelemetryBroadcaster(
            self._store,
            mode=lambda: self._mode,
            interval=self._config.stream_interval,
        )
        self._port_enumerator = port_enumerator
        self._discovery_timeout = discovery_timeout
        self._mode = ControllerMode.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._unsubscribe: Unsubscribe | None = None
        self._background: set[asyncio.Task[None]] = set()
        self._connected_since: datetime | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PedalController:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> ControllerMode:
        """Bring up a source: the configured or discovered board, else simulation."""
        async with self._lock:
            if self._mode != ControllerMode.UNINITIALIZED:
                return self._mode
            await self._connect_or_simulate(self._config.serial_port, allow_discovery=self._config.auto_connect)
            return self._mode

    async def close(self) -> None:
        """Stop every source and background task. The controller can be started again."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        async with self._lock:
            await self._deactivate_hardware()
            await self._deactivate_simulation()
            self._mode = ControllerMode.UNINITIALIZED
        _logger.info("Pedal controller closed")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ControllerMode:
        return self._mode

    @property
    def config(self) -> PedalConfig:
        return self._config

    @property
    def store(self) -> TelemetryStore:
        return self._store

    @property
    def broadcaster(self) -> TelemetryBroadcaster:
        return self._broadcaster

    @property
    def hardware(self) -> HardwareReader:
        return self._hardware

    @property
    def simulator(self) -> SimulatedGenerator:
        return self._simulator

    @property
    def is_simulating(self) -> bool:
        return self._simulator.is_running

    def get_telemetry(self) -> TelemetrySnapshot:
        return self._broadcaster.get_telemetry()

    def get_calibration(self) -> CalibrationConfig:
        return self._store.calibration

    def get_pedals(self) -> PedalFrame | None:
        """Latest three-pedal frame; only available while the board drives the store."""
        if self._mode != ControllerMode.HARDWARE_ACTIVE:
            return None
        return self._store.frame

    def get_connection_status(self) -> ConnectionState:
        port = self._hardware.port
        source = self._store.last_source
        return ConnectionState(
            hardware_connected=self._hardware.is_connected,
            simulation_running=self._simulator.is_running,
            reconnect_attempts=self._hardware.reconnect_attempts,
            port=port,
            baud_rate=self._hardware.baud_rate if port is not None else None,
            connected_since=self._connected_since if self._hardware.is_connected else None,
            lines_received=self._hardware.lines_received,
            lines_discarded=self._hardware.lines_discarded,
            last_source=source.value if source is not None else None,
            snapshot_version=self._store.version,
        )

    def get_full_state(self) -> FullState:
        snapshot = self._store.snapshot
        calibration = self._store.calibration
        return FullState(
            snapshot=snapshot,
            calibration=calibration,
            validation=validate_state(snapshot, calibration),
            mode=self._mode,
            connection=self.get_connection_status(),
        )

    def get_health(self) -> HealthReport:
        snapshot = self._store.snapshot
        validation = validate_state(snapshot, self._store.calibration)
        return HealthReport(
            operational=validation.is_valid,
            active=snapshot.active,
            force=snapshot.force,
            value=snapshot.value,
            last_update=snapshot.captured_at,
            mode=self._mode,
            validation=validation,
            age_seconds=max(0.0, self._clock() - snapshot.timestamp),
        )

    def subscribe_stream(self, interval: float | None = None) -> AsyncIterator[StreamFrame]:
        """Unterminated stream of frames at a fixed cadence; close it to unsubscribe."""
        return self._broadcaster.subscribe(interval)

    # ------------------------------------------------------------------
    # Telemetry operations
    # ------------------------------------------------------------------

    def _reject_when_hardware(self, action: str) -> None:
        if self._mode in _HARDWARE_MODES:
            raise PedalConflictError(f"{action} is not available while the pedal board is connected")

    def update_manual(self, raw_reading: Any) -> TelemetrySnapshot:
        """Apply one raw reading by hand.

        Raises
        ------
        PedalValidationError
            If *raw_reading* is not a finite number.
        PedalConflictError
            If the board drives the store.
        """
        value = require_finite_number(raw_reading, field="raw_reading")
        self._reject_when_hardware("Manual update")
        return self._store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=value))

    def apply_test_force(self, force: Any) -> TelemetrySnapshot:
        """Apply a force in kg as if the sensor had measured it."""
        value = validate_test_force(force)
        self._reject_when_hardware("Test force")
        raw_reading = force_to_raw_reading(value, self._store.calibration)
        _logger.debug("Applying test force %.2fkg raw_reading=%s", value, raw_reading)
        return self._store.apply(RawReadingEvent(source=ReadingSource.MANUAL, raw_reading=raw_reading))

    def configure(self, *, max_force: Any = None, dead_zone: Any = None) -> CalibrationConfig:
        """Update calibration fields; each is validated on its own and nothing changes on error."""
        updates = validate_calibration(max_force=max_force, dead_zone=dead_zone)
        calibration = self._store.configure(**updates)
        _logger.info("Calibration set max_force=%.2fkg dead_zone=%.2fkg", calibration.max_force, calibration.dead_zone)
        return calibration

    def reset(self) -> TelemetrySnapshot:
        """Default the snapshot; calibration is preserved."""
        return self._store.reset()

    # ------------------------------------------------------------------
    # Source lifecycle operations
    # ------------------------------------------------------------------

    async def start_simulation(self) -> None:
        async with self._lock:
            self._reject_when_hardware("Simulation")
            if self._simulator.is_running:
                raise PedalConflictError("Simulation is already running")
            self._activate_simulation()

    async def stop_simulation(self) -> None:
        async with self._lock:
            if not self._simulator.is_running:
                raise PedalConflictError("Simulation is not running")
            await self._deactivate_simulation()
            self._mode = ControllerMode.IDLE

    async def connect_port(self, path: str, baud_rate: int | None = None) -> ConnectionState:
        """Switch to the board on *path*.

        The running source is stopped first. If the port cannot be opened,
        simulation is restarted and :class:`PedalSerialError` is raised.
        """
        baud = baud_rate or self._config.baud_rate
        async with self._lock:
            await self._deactivate_hardware()
            await self._deactivate_simulation()
            try:
                await self._activate_hardware(path, baud)
            except PedalSerialError:
                self._activate_simulation()
                raise
        return self.get_connection_status()

    async def disconnect(self) -> bool:
        """Release the board and fall back to simulation.

        Returns ``False`` (and changes nothing) when no board was connected.
        """
        async with self._lock:
            if self._mode not in _HARDWARE_MODES and not self._hardware.is_running:
                return False
            await self._deactivate_hardware()
            if not self._simulator.is_running:
                self._activate_simulation()
            return True

    async def reconnect(self) -> ControllerMode:
        """Drop the current source and retry the board (last port, configured port, or discovery)."""
        async with self._lock:
            port = self._hardware.port or self._config.serial_port
            await self._deactivate_hardware()
            await self._deactivate_simulation()
            await self._connect_or_simulate(port, allow_discovery=True)
            return self._mode

    async def send_command(self, command: str) -> None:
        """Write one command line (for example ``TARE``) to the connected board.

        Raises
        ------
        PedalValidationError
            If *command* is empty or spans more than one line.
        PedalConflictError
            If the board does not drive the store.
        PedalSerialError
            If the link is down (reconnecting) or the write fails.
        """
        text = command.strip()
        if not text or "\n" in text or "\r" in text:
            raise PedalValidationError("command must be a single non-empty line", field="command")
        async with self._lock:
            if self._mode != ControllerMode.HARDWARE_ACTIVE:
                raise PedalConflictError("Commands can only be sent while the pedal board is connected")
            await self._hardware.send_command(text)
        _logger.info("Sent command %r to pedal board on %s", text, self._hardware.port)

    async def list_ports(self) -> list[SerialPortInfo]:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, list_serial_ports, self._port_enumerator),
                self._discovery_timeout,
            )
        except TimeoutError:
            _logger.warning("Serial port enumeration timed out after %.1fs", self._discovery_timeout)
            return []

    # ------------------------------------------------------------------
    # Internal helpers (call with the lock held)
    # ------------------------------------------------------------------

    def _apply_reading(self, event: RawReadingEvent) -> None:
        self._store.apply(event)

    def _detach(self) -> None:
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    def _activate_simulation(self) -> None:
        self._detach()
        self._unsubscribe = self._simulator.subscribe(self._apply_reading)
        self._simulator.start()
        self._mode = ControllerMode.SIMULATION_ACTIVE

    async def _deactivate_simulation(self) -> None:
        if not self._simulator.is_running:
            return
        self._detach()
        await self._simulator.stop()

    async def _activate_hardware(self, path: str, baud_rate: int) -> None:
        self._mode = ControllerMode.CONNECTING_HARDWARE
        try:
            await self._hardware.connect(path, baud_rate)
        except PedalSerialError as exc:
            _logger.warning("Could not connect to pedal board on %s: %s", path, exc)
            raise
        self._detach()
        self._unsubscribe = self._hardware.subscribe(self._apply_reading)
        self._mode = ControllerMode.HARDWARE_ACTIVE

    async def _deactivate_hardware(self) -> None:
        if not self._hardware.is_running and self._mode not in _HARDWARE_MODES:
            return
        self._detach()
        await self._hardware.disconnect()
        self._store.clear_frame()
        self._connected_since = None

    async def _discover(self) -> list[SerialPortInfo]:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, discover_ports, self._port_enumerator),
                self._discovery_timeout,
            )
        except TimeoutError:
            _logger.warning("Pedal board discovery timed out after %.1fs", self._discovery_timeout)
            return []

    async def _connect_or_simulate(self, port: str | None, *, allow_discovery: bool) -> None:
        self._mode = ControllerMode.CONNECTING_HARDWARE
        if port is None and allow_discovery:
            candidates = [info.path for info in await self._discover() if info.is_target_like]
            port = candidates[0] if candidates else None
        if port is None:
            _logger.info("No pedal board available; running simulation")
            self._activate_simulation()
            return
        try:
            await self._activate_hardware(port, self._config.baud_rate)
        except PedalSerialError:
            _logger.info("Falling back to simulation")
            self._activate_simulation()

    def _on_hardware_connected(self, port: str) -> None:
        # Fires for the initial open and for every reconnect.
        reopened = self._connected_since is not None
        self._connected_since = utcnow()
        if reopened:
            _logger.info("Pedal board back online on %s", port)
        else:
            _logger.info("Pedal board online on %s", port)

    def _on_hardware_unavailable(self, port: str) -> None:
        task = asyncio.get_running_loop().create_task(self._fail_over(port), name="pypedal-failover")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _fail_over(self, port: str) -> None:
        async with self._lock:
            if self._mode != ControllerMode.HARDWARE_ACTIVE or self._hardware.port != port:
                return
            _logger.warning("Pedal board on %s is unavailable; switching to simulation", port)
            await self._deactivate_hardware()
            self._activate_simulation()
