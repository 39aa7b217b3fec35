"""Serial port descriptor."""

from __future__ import annotations

from pypedal.models._base import PedalBaseModel


class SerialPortInfo(PedalBaseModel):
    """A serial port as seen by the enumerator.

    ``vendor_id``/``product_id`` are lowercase 4-digit hex strings, or
    ``None`` for ports that are not USB devices.
    """

    path: str
    manufacturer: str | None = None
    vendor_id: str | None = None
    product_id: str | None = None
    description: str | None = None
    is_target_like: bool = False
