"""Error taxonomy shared by the retracer toolkit."""

from __future__ import annotations

from typing import Optional


class RetracerError(RuntimeError):
    """Base class for every failure surfaced by the retracer toolkit."""


class InvalidConfiguration(RetracerError, ValueError):
    """Raised when a RetraceConfig cannot be turned into a command line."""


class RetracerBusy(RetracerError):
    """Raised when a run is started while another run is still active."""


class LaunchFailed(RetracerError):
    """Raised when the replay executable cannot be found or started."""


class ProcessCrashed(RetracerError):
    """The replay process terminated abnormally (signal / crash)."""


class NonZeroExit(RetracerError):
    """The replay process exited cleanly with a non-zero status."""

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class MalformedHeader(RetracerError):
    """A snapshot record header (or its pixel body) could not be decoded."""

    def __init__(self, message: str, offset: int = 0) -> None:
        super().__init__(message)
        self.offset = offset


class StateParseFailed(RetracerError):
    """The captured-state JSON document could not be parsed."""


__all__ = [
    "RetracerError",
    "InvalidConfiguration",
    "RetracerBusy",
    "LaunchFailed",
    "ProcessCrashed",
    "NonZeroExit",
    "MalformedHeader",
    "StateParseFailed",
]
