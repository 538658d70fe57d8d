"""
retracer - launch ``glretrace``/``eglretrace`` and decode what they report.

The package is the non-GUI core behind trace inspection front-ends.  Each
module owns one step of a run:

    config.py       → RetraceConfig / LaunchConfig, launch environment
    command.py      → configuration → executable + arguments
    process.py      → child process lifecycle and termination
    pnm.py          → snapshot stream (PNM records) decoding
    diagnostics.py  → per-call error lines from stderr
    decoder.py      → stdout/stderr → state, snapshots or summary text
    events.py       → typed events and the EventBus
    controller.py   → background runs that publish events
"""

from .config import LaunchConfig, RetraceAPI, RetraceConfig, RetraceMode  # noqa: F401
from .command import RetraceCommand, build_command, executable_for  # noqa: F401
from .errors import (  # noqa: F401
    InvalidConfiguration,
    LaunchFailed,
    MalformedHeader,
    NonZeroExit,
    ProcessCrashed,
    RetracerBusy,
    RetracerError,
    StateParseFailed,
)
from .pnm import SnapshotImage, decode_one, decode_stream  # noqa: F401
from .diagnostics import ReplayError, parse_replay_errors  # noqa: F401
from .process import ProcessOutcome, ProcessState, RetraceProcess  # noqa: F401
from .decoder import CapturedState, DecodedOutput, ReplayResult, decode_output  # noqa: F401
from .events import (  # noqa: F401
    BaseEvent,
    ErrorEvent,
    EventBus,
    EventSubscription,
    FinishedEvent,
    ReplayErrorsEvent,
    SnapshotsCapturedEvent,
    StateCapturedEvent,
    parse_event,
    subscribe_callbacks,
)
from .controller import Retracer  # noqa: F401

__all__ = [
    "LaunchConfig",
    "RetraceAPI",
    "RetraceConfig",
    "RetraceMode",
    "RetraceCommand",
    "build_command",
    "executable_for",
    "RetracerError",
    "InvalidConfiguration",
    "RetracerBusy",
    "LaunchFailed",
    "ProcessCrashed",
    "NonZeroExit",
    "MalformedHeader",
    "StateParseFailed",
    "SnapshotImage",
    "decode_one",
    "decode_stream",
    "ReplayError",
    "parse_replay_errors",
    "ProcessOutcome",
    "ProcessState",
    "RetraceProcess",
    "CapturedState",
    "DecodedOutput",
    "ReplayResult",
    "decode_output",
    "BaseEvent",
    "StateCapturedEvent",
    "SnapshotsCapturedEvent",
    "ReplayErrorsEvent",
    "FinishedEvent",
    "ErrorEvent",
    "EventBus",
    "EventSubscription",
    "parse_event",
    "subscribe_callbacks",
    "Retracer",
]

__version__ = "0.1.0"
