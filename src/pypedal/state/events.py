"""Normalized raw-reading events.

All signal sources emit these. Only the state/store layer applies them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pypedal.models.pedals import PedalFrame


class ReadingSource(StrEnum):
    HARDWARE = "hardware"
    SIMULATION = "simulation"
    MANUAL = "manual"


class RawReadingEvent(BaseModel):
    """One sample to apply to the telemetry store.

    Hardware events carry the parsed board ``frame`` and leave
    ``raw_reading`` unset: the store derives it from the brake channel with
    the calibration in force at apply time.
    """

    model_config = ConfigDict(frozen=True)

    source: ReadingSource
    raw_reading: float | None = Field(default=None, allow_inf_nan=False)
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    frame: PedalFrame | None = None

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @model_validator(mode="after")
    def _require_payload(self) -> RawReadingEvent:
        if self.raw_reading is None and self.frame is None:
            raise ValueError("event needs a raw_reading or a frame")
        return self
