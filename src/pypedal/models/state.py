"""Service-level views: mode, connection status, health and stream frames."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pypedal.models._base import PedalBaseModel, UtcDatetime
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot, ValidationResult


class ControllerMode(StrEnum):
    """Which signal source drives the telemetry store."""

    UNINITIALIZED = "uninitialized"
    CONNECTING_HARDWARE = "connecting_hardware"
    HARDWARE_ACTIVE = "hardware_active"
    SIMULATION_ACTIVE = "simulation_active"
    IDLE = "idle"
    """No source running (simulation stopped explicitly)."""


class ConnectionState(PedalBaseModel):
    hardware_connected: bool = False
    simulation_running: bool = False
    reconnect_attempts: int = Field(default=0, ge=0)
    port: str | None = None
    baud_rate: int | None = None
    connected_since: UtcDatetime | None = None
    """When the current board link was (re)opened."""
    lines_received: int = Field(default=0, ge=0)
    lines_discarded: int = Field(default=0, ge=0)
    """Board lines that did not parse as a pedal frame."""
    last_source: str | None = None
    """Source of the current snapshot: hardware, simulation or manual."""
    snapshot_version: int = Field(default=0, ge=0)


class FullState(PedalBaseModel):
    snapshot: TelemetrySnapshot
    calibration: CalibrationConfig
    validation: ValidationResult
    mode: ControllerMode
    connection: ConnectionState


class HealthReport(PedalBaseModel):
    operational: bool
    active: bool
    force: float
    value: int
    last_update: UtcDatetime
    mode: ControllerMode
    validation: ValidationResult
    age_seconds: float
    """Seconds since the current snapshot was captured."""


class StreamFrame(PedalBaseModel):
    """One push delivered to a streaming subscriber."""

    brake: TelemetrySnapshot
    mode: ControllerMode
    is_simulating: bool
    sent_at: UtcDatetime
