"""Run configuration and launch environment for retracer."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .errors import InvalidConfiguration

BINARY_DIR_ENV = "RETRACER_BINARY_DIR"
LOG_LEVEL_ENV = "RETRACER_LOG"


class RetraceAPI(enum.Enum):
    GL = "gl"
    EGL = "egl"

    @classmethod
    def parse(cls, value: Union[str, "RetraceAPI"]) -> "RetraceAPI":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        raise InvalidConfiguration(f"unknown graphics API {value!r}")


class RetraceMode(enum.Enum):
    """Which main payload a run produces on stdout."""

    REPLAY = "replay"
    BENCHMARK = "benchmark"
    STATE = "state"
    SNAPSHOTS = "snapshots"


@dataclass(frozen=True)
class RetraceConfig:
    """Immutable description of one replay run."""

    api: RetraceAPI
    trace_file: str
    benchmarking: bool = False
    double_buffered: bool = True
    capture_state_at: Optional[int] = None
    capture_snapshots: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.trace_file, os.PathLike):
            object.__setattr__(self, "trace_file", os.fspath(self.trace_file))

    @property
    def captures(self) -> bool:
        return self.capture_state_at is not None or self.capture_snapshots

    @property
    def mode(self) -> RetraceMode:
        # A state dump owns stdout, so it wins when both capture flags are set.
        if self.capture_state_at is not None:
            return RetraceMode.STATE
        if self.capture_snapshots:
            return RetraceMode.SNAPSHOTS
        if self.benchmarking:
            return RetraceMode.BENCHMARK
        return RetraceMode.REPLAY


def default_binary_dir() -> Optional[Path]:
    value = os.environ.get(BINARY_DIR_ENV)
    return Path(value) if value else None


@dataclass
class LaunchConfig:
    """Environment handed to every replay child process."""

    binary_dir: Optional[Path] = field(default_factory=default_binary_dir)
    base_env: Optional[Mapping[str, str]] = None

    def launch_environment(self) -> Dict[str, str]:
        """Return a copy of the base environment with ``binary_dir`` prepended to PATH."""
        env = dict(self.base_env if self.base_env is not None else os.environ)
        if self.binary_dir is not None:
            current = env.get("PATH", "")
            prefix = os.fspath(self.binary_dir)
            env["PATH"] = prefix + os.pathsep + current if current else prefix
        return env


__all__ = [
    "BINARY_DIR_ENV",
    "LOG_LEVEL_ENV",
    "default_binary_dir",
    "RetraceAPI",
    "RetraceMode",
    "RetraceConfig",
    "LaunchConfig",
]
