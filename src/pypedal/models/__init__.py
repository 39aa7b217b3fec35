"""Data models for pypedal."""

from pypedal.models._base import PedalBaseModel, UtcDatetime, parse_utc_timestamp
from pypedal.models.pedals import PedalChannel, PedalFrame, PedalStatus
from pypedal.models.ports import SerialPortInfo
from pypedal.models.requests import (
    CommandRequest,
    ConfigureRequest,
    ConnectRequest,
    ManualUpdateRequest,
    TestForceRequest,
)
from pypedal.models.state import ConnectionState, ControllerMode, FullState, HealthReport, StreamFrame
from pypedal.models.telemetry import CalibrationConfig, TelemetrySnapshot, ValidationResult

__all__ = [
    "CalibrationConfig",
    "CommandRequest",
    "ConfigureRequest",
    "ConnectRequest",
    "ConnectionState",
    "ControllerMode",
    "FullState",
    "HealthReport",
    "ManualUpdateRequest",
    "PedalBaseModel",
    "PedalChannel",
    "PedalFrame",
    "PedalStatus",
    "SerialPortInfo",
    "StreamFrame",
    "TelemetrySnapshot",
    "TestForceRequest",
    "UtcDatetime",
    "ValidationResult",
    "parse_utc_timestamp",
]
