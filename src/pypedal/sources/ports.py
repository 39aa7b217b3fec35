"""Serial port enumeration and pedal-board heuristics."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from serial.tools import list_ports

from pypedal._constants import TARGET_MANUFACTURER_HINTS, TARGET_PATH_HINTS, TARGET_VENDOR_IDS
from pypedal.models.ports import SerialPortInfo

_logger = logging.getLogger(__name__)

PortEnumerator = Callable[[], Iterable[Any]]
"""Returns pyserial ``ListPortInfo``-like objects (``device``, ``manufacturer``, ``vid``, ``pid``)."""


def _hex_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return f"{value:04x}"
    return str(value).strip().lower() or None


def _target_score(path: str, manufacturer: str | None, vendor_id: str | None) -> int:
    """0 = unlikely; higher = more likely a pedal board."""
    score = 0
    if vendor_id is not None and vendor_id in TARGET_VENDOR_IDS:
        score += 4
    lowered = (manufacturer or "").lower()
    if any(hint in lowered for hint in TARGET_MANUFACTURER_HINTS):
        score += 2
    if any(hint in path for hint in TARGET_PATH_HINTS):
        score += 1
    return score


def describe_port(info: Any) -> SerialPortInfo:
    """Convert a pyserial port entry into a :class:`SerialPortInfo`."""
    path = str(getattr(info, "device", "") or "")
    manufacturer = getattr(info, "manufacturer", None) or None
    vendor_id = _hex_id(getattr(info, "vid", None))
    return SerialPortInfo(
        path=path,
        manufacturer=manufacturer,
        vendor_id=vendor_id,
        product_id=_hex_id(getattr(info, "pid", None)),
        description=getattr(info, "description", None) or None,
        is_target_like=_target_score(path, manufacturer, vendor_id) > 0,
    )


def list_serial_ports(enumerator: PortEnumerator = list_ports.comports) -> list[SerialPortInfo]:
    """Every serial port the OS reports, in enumeration order.

    Enumeration failures are logged and yield an empty list.
    """
    try:
        raw_ports = list(enumerator())
    except Exception:
        _logger.warning("Serial port enumeration failed", exc_info=True)
        return []
    return [describe_port(info) for info in raw_ports]


def is_target_like(port: SerialPortInfo) -> bool:
    """Whether *port* looks like a pedal board (vendor id, manufacturer or path)."""
    return _target_score(port.path, port.manufacturer, port.vendor_id) > 0


def rank_ports(ports: Iterable[SerialPortInfo]) -> list[SerialPortInfo]:
    """Most board-like first; ties keep enumeration order."""
    return sorted(ports, key=lambda port: -_target_score(port.path, port.manufacturer, port.vendor_id))


def discover_ports(enumerator: PortEnumerator = list_ports.comports) -> list[SerialPortInfo]:
    """Ranked ports for auto-connect: target-like matches first, then the rest."""
    ports = rank_ports(list_serial_ports(enumerator))
    candidates = sum(1 for port in ports if is_target_like(port))
    _logger.info("Found %d serial port(s), %d pedal-board candidate(s)", len(ports), candidates)
    for port in ports:
        _logger.debug(
            "Port %s manufacturer=%s vid=%s pid=%s candidate=%s",
            port.path,
            port.manufacturer or "unknown",
            port.vendor_id or "n/a",
            port.product_id or "n/a",
            port.is_target_like,
        )
    return ports
