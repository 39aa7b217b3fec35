"""pypedal - Brake pedal telemetry from a serial pedal board or a simulation."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pypedal")
except PackageNotFoundError:
    __version__ = "0+local"
from pypedal.calibration import calibrate, validate_state
from pypedal.config import PedalConfig
from pypedal.controller import PedalController
from pypedal.exceptions import (
    PedalConfigError,
    PedalConflictError,
    PedalError,
    PedalSerialError,
    PedalValidationError,
)
from pypedal.models import (
    CalibrationConfig,
    ConnectionState,
    ControllerMode,
    FullState,
    HealthReport,
    PedalChannel,
    PedalFrame,
    PedalStatus,
    SerialPortInfo,
    StreamFrame,
    TelemetrySnapshot,
    ValidationResult,
)

__all__ = [
    "__version__",
    "CalibrationConfig",
    "ConnectionState",
    "ControllerMode",
    "FullState",
    "HealthReport",
    "PedalChannel",
    "PedalConfig",
    "PedalConfigError",
    "PedalConflictError",
    "PedalController",
    "PedalError",
    "PedalFrame",
    "PedalSerialError",
    "PedalStatus",
    "PedalValidationError",
    "SerialPortInfo",
    "StreamFrame",
    "TelemetrySnapshot",
    "ValidationResult",
    "calibrate",
    "validate_state",
]
