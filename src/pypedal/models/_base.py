"""Base model shared by every pypedal data model.

Every model inherits from :class:`PedalBaseModel` which provides:

* immutability (``frozen=True``): a snapshot is replaced, never edited.
* ``alias_generator=to_camel`` so the wire format uses camelCase keys
  (``rawReading``, ``maxForce``) while Python code stays snake_case.
* :meth:`PedalBaseModel.to_wire` for JSON-ready dicts.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_utc_timestamp(value: Any) -> Any:
    """Coerce epoch numbers (seconds **or** milliseconds) and naive datetimes to UTC.

    Anything else is handed to pydantic unchanged.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        return datetime.fromtimestamp(ts, tz=UTC)
    return value


UtcDatetime = Annotated[datetime, BeforeValidator(parse_utc_timestamp)]
"""Annotated type that always yields a timezone-aware UTC datetime."""


class PedalBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
