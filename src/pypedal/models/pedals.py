"""Models for the three-pedal frames reported by the pedal board."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from pypedal._constants import NORMALIZED_MAX
from pypedal.models._base import PedalBaseModel, UtcDatetime, utcnow


class PedalStatus(StrEnum):
    """Trailing status token of a board line.

    Values are the literal tokens the firmware prints.
    """

    ACCELERATING = "ACELERANDO"
    BRAKING = "FRENANDO"
    CLUTCHING = "EMBRAGUE"
    RELEASED = "LIBERADOS"


class PedalChannel(PedalBaseModel):
    value: int = Field(default=0, ge=0, le=NORMALIZED_MAX)
    percentage: int = Field(default=0, ge=0, le=100)
    active: bool = False

    @classmethod
    def from_reading(cls, value: int, percentage: int) -> PedalChannel:
        """Build a channel; the pedal counts as pressed when its percentage is non-zero."""
        return cls(value=value, percentage=percentage, active=percentage > 0)


class PedalFrame(PedalBaseModel):
    """One successfully parsed board line."""

    throttle: PedalChannel
    brake: PedalChannel
    clutch: PedalChannel
    status: PedalStatus
    captured_at: UtcDatetime = Field(default_factory=utcnow)
    raw_line: str = ""
