"""Custom exception hierarchy for pypedal."""

from __future__ import annotations


class PedalError(Exception):
    """Base exception for all pypedal errors."""


class PedalConfigError(PedalError):
    """Invalid or missing process configuration."""


class PedalValidationError(PedalError):
    """A caller-supplied value is out of range or of the wrong type.

    Raised before any state is touched.
    """

    def __init__(self, message: str, *, field: str = "") -> None:
        self.field = field
        super().__init__(message)


class PedalConflictError(PedalError):
    """The request is not allowed in the current mode.

    Examples: a manual reading while hardware drives the store, starting a
    simulation that is already running, stopping one that is not.
    """


class PedalSerialError(PedalError):
    """Serial port failure (open, write) surfaced to an explicit caller."""

    def __init__(self, message: str, *, port: str = "") -> None:
        self.port = port
        super().__init__(message)
