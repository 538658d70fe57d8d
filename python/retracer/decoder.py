"""Turn the captured output of a finished replay process into results.

The payload shape on stdout is chosen by the run configuration alone:

* state capture (``-D <call>``) -> one JSON object describing the GL state,
* snapshot capture (``-s -``)   -> concatenated PNM records (see ``pnm.py``),
* anything else                 -> free-form text used as the summary.

stderr is always scanned for per-call errors, whatever the mode.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .config import RetraceConfig, RetraceMode
from .diagnostics import ReplayError, parse_replay_errors
from .errors import MalformedHeader, NonZeroExit, ProcessCrashed, RetracerError, StateParseFailed
from .pnm import SnapshotImage, decode_stream
from .process import ProcessOutcome, ProcessState

logger = logging.getLogger(__name__)

CRASHED_MESSAGE = "Process crashed"
NON_ZERO_EXIT_MESSAGE = "Process exited with non zero exit code"
TERMINATED_MESSAGE = "Process terminated."
STATE_FETCHED_MESSAGE = "State fetched."
SNAPS_FETCHED_MESSAGE = "Snaps fetched"


class CapturedState(Mapping):
    """Read-only view of a state dump with keys sorted at every level."""

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data: Dict[str, Any] = dict(sorted(data.items(), key=lambda item: item[0]))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"CapturedState({list(self._data)})"

    def to_json(self, *, indent: Optional[int] = 2) -> str:
        return json.dumps(self._data, indent=indent)


def _sorted_object(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    # stable sort: the last duplicate key still wins, as in json.loads
    return dict(sorted(pairs, key=lambda item: item[0]))


def parse_state(stdout: bytes) -> CapturedState:
    """Parse a state dump, raising StateParseFailed on anything but a JSON object."""
    try:
        document = json.loads(stdout, object_pairs_hook=_sorted_object)
    except (ValueError, UnicodeDecodeError) as exc:
        raise StateParseFailed(str(exc)) from exc
    if not isinstance(document, dict):
        raise StateParseFailed(f"expected a JSON object, got {type(document).__name__}")
    return CapturedState(document)


@dataclass
class ReplayResult:
    summary: str
    errors: List[ReplayError] = field(default_factory=list)


@dataclass
class DecodedOutput:
    result: ReplayResult
    state: Optional[CapturedState] = None
    snapshots: Optional[List[SnapshotImage]] = None
    failure: Optional[RetracerError] = None

    @property
    def ok(self) -> bool:
        # a truncated snapshot stream still yields the images before it
        return self.failure is None or isinstance(self.failure, MalformedHeader)


def decode_output(
    stdout: bytes,
    stderr: bytes,
    config: RetraceConfig,
    state: ProcessState,
    exit_code: Optional[int],
) -> DecodedOutput:
    errors = parse_replay_errors(stderr)

    if state is ProcessState.CRASHED:
        failure: RetracerError = ProcessCrashed(CRASHED_MESSAGE)
        return DecodedOutput(ReplayResult(CRASHED_MESSAGE, errors), failure=failure)
    if state is ProcessState.TERMINATED:
        return DecodedOutput(ReplayResult(TERMINATED_MESSAGE, errors))
    if exit_code != 0:
        failure = NonZeroExit(NON_ZERO_EXIT_MESSAGE, exit_code)
        return DecodedOutput(ReplayResult(NON_ZERO_EXIT_MESSAGE, errors), failure=failure)

    mode = config.mode
    if mode is RetraceMode.STATE:
        try:
            captured = parse_state(stdout)
        except StateParseFailed as exc:
            logger.warning("failed to parse state dump at call %s: %s", config.capture_state_at, exc)
            message = f"Failed to parse captured state: {exc}"
            return DecodedOutput(ReplayResult(message, errors), failure=exc)
        return DecodedOutput(ReplayResult(STATE_FETCHED_MESSAGE, errors), state=captured)

    if mode is RetraceMode.SNAPSHOTS:
        images, stream_error = decode_stream(stdout)
        logger.debug("decoded %d snapshot(s) from %d bytes", len(images), len(stdout))
        return DecodedOutput(
            ReplayResult(SNAPS_FETCHED_MESSAGE, errors),
            snapshots=images,
            failure=stream_error,
        )

    return DecodedOutput(ReplayResult(stdout.decode("utf-8", errors="replace"), errors))


def decode_outcome(outcome: ProcessOutcome, config: RetraceConfig) -> DecodedOutput:
    return decode_output(outcome.stdout, outcome.stderr, config, outcome.state, outcome.exit_code)


__all__ = [
    "CRASHED_MESSAGE",
    "NON_ZERO_EXIT_MESSAGE",
    "TERMINATED_MESSAGE",
    "STATE_FETCHED_MESSAGE",
    "SNAPS_FETCHED_MESSAGE",
    "CapturedState",
    "ReplayResult",
    "DecodedOutput",
    "parse_state",
    "decode_output",
    "decode_outcome",
]
