from __future__ import annotations

from typing import Sequence


class SF45Error(Exception):
    """Base class for every error raised by the device layer."""


class ValidationError(SF45Error, ValueError):
    """Argument outside the device domain; the transport was not touched."""


class TransportError(SF45Error):
    pass


class TransportTimeout(TransportError, TimeoutError):
    """No matching response arrived within the allotted window."""


class TransportFailure(TransportError):
    """The link itself is unusable (port closed, unplugged, write failed)."""


class DecodeError(SF45Error, ValueError):
    pass


class StateError(SF45Error, RuntimeError):
    pass


class PartialConfigurationError(SF45Error):
    """
    A multi-register write failed after at least one register was written.

    The device may now hold a mixed configuration; callers should re-read the
    affected registers before trusting them.
    """

    def __init__(self, message: str, written: Sequence[str], cause: BaseException):
        super().__init__(message)
        self.written = tuple(written)
        self.cause = cause
