"""Process configuration for pypedal."""

from __future__ import annotations

import dataclasses
import math
import os
from typing import Any

from pypedal._constants import (
    DEAD_ZONE_LIMIT,
    DEFAULT_BAUD_RATE,
    DEFAULT_DEAD_ZONE,
    DEFAULT_MAX_FORCE,
    DEFAULT_MAX_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SIMULATION_INTERVAL,
    DEFAULT_STREAM_INTERVAL,
    MAX_FORCE_LIMIT,
)
from pypedal.exceptions import PedalConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class PedalConfig:
    """Service configuration.

    Parameters
    ----------
    serial_port : str or None
        Serial device to open at startup. ``None`` lets discovery pick one
        when ``auto_connect`` is enabled.
    baud_rate : int
        Serial baud rate (8N1 framing is fixed).
    auto_connect : bool
        Try to discover and open a pedal board at startup. When disabled and
        no ``serial_port`` is set, the service starts in simulation.
    reconnect_delay : float
        Seconds between reconnection attempts after the link drops.
    max_reconnect_attempts : int
        Attempts before the link is declared unavailable and the service
        fails over to simulation.
    simulation_interval : float
        Tick of the synthetic generator, in seconds.
    stream_interval : float
        Push cadence for streaming subscribers, in seconds.
    max_force : float
        Initial calibration upper clamp in kg, ``(0, 50]``.
    dead_zone : float
        Initial calibration dead zone in kg, ``[0, 10)``.
    http_host : str
        Bind address of the HTTP surface.
    http_port : int
        Bind port of the HTTP surface.
    """

    serial_port: str | None = None
    baud_rate: int = DEFAULT_BAUD_RATE
    auto_connect: bool = True
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS
    simulation_interval: float = DEFAULT_SIMULATION_INTERVAL
    stream_interval: float = DEFAULT_STREAM_INTERVAL
    max_force: float = DEFAULT_MAX_FORCE
    dead_zone: float = DEFAULT_DEAD_ZONE
    http_host: str = "0.0.0.0"
    http_port: int = 3000

    def __post_init__(self) -> None:
        if self.baud_rate <= 0:
            raise PedalConfigError(f"baud_rate must be positive, got {self.baud_rate}")
        if self.reconnect_delay < 0:
            raise PedalConfigError(f"reconnect_delay must be >= 0, got {self.reconnect_delay}")
        if self.max_reconnect_attempts < 0:
            raise PedalConfigError(f"max_reconnect_attempts must be >= 0, got {self.max_reconnect_attempts}")
        for name in ("simulation_interval", "stream_interval"):
            value = getattr(self, name)
            if not value > 0:
                raise PedalConfigError(f"{name} must be positive, got {value}")
        if not (math.isfinite(self.max_force) and 0 < self.max_force <= MAX_FORCE_LIMIT):
            raise PedalConfigError(f"max_force must be in (0, {MAX_FORCE_LIMIT}], got {self.max_force}")
        if not (math.isfinite(self.dead_zone) and 0 <= self.dead_zone < DEAD_ZONE_LIMIT):
            raise PedalConfigError(f"dead_zone must be in [0, {DEAD_ZONE_LIMIT}), got {self.dead_zone}")
        if not 0 < self.http_port < 65536:
            raise PedalConfigError(f"http_port must be a valid TCP port, got {self.http_port}")

    @classmethod
    def from_env(cls, **overrides: Any) -> PedalConfig:
        """Create configuration from ``PYPEDAL_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        PedalConfigError
            When a variable cannot be converted or a value is out of range.
        """
        env = os.environ

        _ENV_CONVERTERS: dict[str, tuple[str, Any]] = {
            "PYPEDAL_PORT": ("serial_port", str),
            "PYPEDAL_BAUD_RATE": ("baud_rate", int),
            "PYPEDAL_RECONNECT_DELAY": ("reconnect_delay", float),
            "PYPEDAL_MAX_RECONNECT_ATTEMPTS": ("max_reconnect_attempts", int),
            "PYPEDAL_SIMULATION_INTERVAL": ("simulation_interval", float),
            "PYPEDAL_STREAM_INTERVAL": ("stream_interval", float),
            "PYPEDAL_MAX_FORCE": ("max_force", float),
            "PYPEDAL_DEAD_ZONE": ("dead_zone", float),
            "PYPEDAL_HTTP_HOST": ("http_host", str),
            "PYPEDAL_HTTP_PORT": ("http_port", int),
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, (field_name, convert) in _ENV_CONVERTERS.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val.strip())
            except ValueError as exc:
                raise PedalConfigError(f"{env_key}={val!r} is not a valid {convert.__name__}") from exc

        # An empty port variable means "discover".
        if config_kwargs.get("serial_port") == "":
            config_kwargs["serial_port"] = None

        if "auto_connect" not in overrides:
            config_kwargs["auto_connect"] = _env_bool(env.get("PYPEDAL_AUTO_CONNECT"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
