"""Line protocol of the pedal board.

The firmware prints one line per sample::

    Acel: 0/1023 (0%) | Freno: 512/1023 (50%) | Clutch: 0/1023 (0%) | FRENANDO

:func:`parse_pedal_line` is pure and never raises on bad input: serial
lines get corrupted in transit and a garbled line is simply dropped.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from pypedal.models._base import utcnow
from pypedal.models.pedals import PedalChannel, PedalFrame, PedalStatus

_logger = logging.getLogger(__name__)

_CHANNEL = r"\s*(\d+)/1023\s*\((\d+)%\)"
_THROTTLE_RE = re.compile(r"Acel:" + _CHANNEL)
_BRAKE_RE = re.compile(r"Freno:" + _CHANNEL)
_CLUTCH_RE = re.compile(r"Clutch:" + _CHANNEL)
_STATUS_RE = re.compile(r"(" + "|".join(status.value for status in PedalStatus) + r")$")


def _channel(match: re.Match[str]) -> PedalChannel | None:
    value, percentage = int(match.group(1)), int(match.group(2))
    if value > 1023 or percentage > 100:
        return None
    return PedalChannel.from_reading(value, percentage)


def parse_pedal_line(line: str, *, captured_at: datetime | None = None) -> PedalFrame | None:
    """Parse one board line into a :class:`PedalFrame`.

    Returns ``None`` unless all three channels and the status token match.
    """
    text = line.strip()
    throttle_match = _THROTTLE_RE.search(text)
    brake_match = _BRAKE_RE.search(text)
    clutch_match = _CLUTCH_RE.search(text)
    status_match = _STATUS_RE.search(text)

    if not (throttle_match and brake_match and clutch_match and status_match):
        _logger.debug("Discarding unrecognized board line: %r", text[:120])
        return None

    throttle = _channel(throttle_match)
    brake = _channel(brake_match)
    clutch = _channel(clutch_match)
    if throttle is None or brake is None or clutch is None:
        _logger.debug("Discarding out-of-range board line: %r", text[:120])
        return None

    return PedalFrame(
        throttle=throttle,
        brake=brake,
        clutch=clutch,
        status=PedalStatus(status_match.group(1)),
        captured_at=captured_at or utcnow(),
        raw_line=text,
    )


def format_pedal_line(frame: PedalFrame) -> str:
    """Render a frame in the board's own line format."""
    return (
        f"Acel: {frame.throttle.value}/1023 ({frame.throttle.percentage}%) | "
        f"Freno: {frame.brake.value}/1023 ({frame.brake.percentage}%) | "
        f"Clutch: {frame.clutch.value}/1023 ({frame.clutch.percentage}%) | "
        f"{frame.status.value}"
    )
