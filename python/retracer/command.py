"""Translate a RetraceConfig into the replay executable and its arguments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from .config import RetraceAPI, RetraceConfig
from .errors import InvalidConfiguration

_EXECUTABLES = {
    RetraceAPI.GL: "glretrace",
    RetraceAPI.EGL: "eglretrace",
}


@dataclass(frozen=True)
class RetraceCommand:
    executable: str
    arguments: Tuple[str, ...] = ()

    @property
    def argv(self) -> List[str]:
        return [self.executable, *self.arguments]

    def __str__(self) -> str:
        return " ".join(self.argv)


def executable_for(api: RetraceAPI) -> str:
    try:
        return _EXECUTABLES[api]
    except (KeyError, TypeError):
        raise InvalidConfiguration(f"unsupported graphics API {api!r}") from None


def build_command(config: RetraceConfig) -> RetraceCommand:
    """Build the command line for ``config``.

    Capture flags (``-D`` / ``-s -``) and benchmarking (``-b``) are mutually
    exclusive; when either capture is requested ``-b`` is never emitted.
    """
    executable = executable_for(config.api)
    if not config.trace_file:
        raise InvalidConfiguration("trace file path is empty")

    args: List[str] = ["-db" if config.double_buffered else "-sb"]
    if config.captures:
        if config.capture_state_at is not None:
            call = config.capture_state_at
            if isinstance(call, bool) or not isinstance(call, int) or call < 0:
                raise InvalidConfiguration(f"invalid call number for state capture: {call!r}")
            args.extend(["-D", str(call)])
        if config.capture_snapshots:
            args.extend(["-s", "-"])
    elif config.benchmarking:
        args.append("-b")
    args.append(config.trace_file)
    return RetraceCommand(executable, tuple(args))


__all__ = ["RetraceCommand", "build_command", "executable_for"]
