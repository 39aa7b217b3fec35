"""Pydantic request models for the HTTP surface.

These models provide a consistent "validate -> normalize -> execute" flow:
the web layer validates a JSON body into one of these, then calls the
matching :class:`pypedal.controller.PedalController` operation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from pypedal._constants import DEFAULT_BAUD_RATE, TEST_FORCE_LIMIT

_REQUEST_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    populate_by_name=True,
    alias_generator=to_camel,
    str_strip_whitespace=True,
)


class ManualUpdateRequest(BaseModel):
    """Inject one raw reading (simulation mode only)."""

    model_config = _REQUEST_CONFIG

    raw_reading: float = Field(strict=True, allow_inf_nan=False)


class ConfigureRequest(BaseModel):
    """Partial calibration update; bounds are checked by the controller."""

    model_config = _REQUEST_CONFIG

    max_force: float | None = Field(default=None, strict=True)
    dead_zone: float | None = Field(default=None, strict=True)


class ConnectRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    port: str
    baud_rate: int = Field(default=DEFAULT_BAUD_RATE, gt=0)

    @field_validator("port")
    @classmethod
    def _port_non_empty(cls, value: str) -> str:
        port = value.strip()
        if not port:
            raise ValueError("port must be non-empty")
        return port


class TestForceRequest(BaseModel):
    """Apply a force in kg as if the sensor had measured it."""

    __test__ = False

    model_config = _REQUEST_CONFIG

    force: float = Field(strict=True, ge=0, le=TEST_FORCE_LIMIT, allow_inf_nan=False)


class CommandRequest(BaseModel):
    """One command line for the pedal board (hardware mode only)."""

    model_config = _REQUEST_CONFIG

    command: str = Field(min_length=1, max_length=64)
