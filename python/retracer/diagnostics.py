"""Structured per-call errors reported by the replay process on stderr."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Union

# "<call>: <kind>: <message>", e.g. "12: GL_INVALID_ENUM: glEnable(cap = 0x1234)"
ERROR_LINE_RE = re.compile(r"^(\d+): +(\b\w+\b): (.+)$", re.ASCII)


@dataclass(frozen=True)
class ReplayError:
    call_index: int
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"call": self.call_index, "kind": self.kind, "message": self.message}


def parse_error_line(line: str) -> Optional[ReplayError]:
    match = ERROR_LINE_RE.match(line)
    if not match:
        return None
    return ReplayError(int(match.group(1)), match.group(2), match.group(3))


def parse_replay_errors(stderr: Union[str, bytes]) -> List[ReplayError]:
    """Return one ReplayError per matching stderr line, in line order."""
    if isinstance(stderr, (bytes, bytearray)):
        stderr = bytes(stderr).decode("utf-8", errors="replace")
    errors: List[ReplayError] = []
    for line in stderr.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        error = parse_error_line(line)
        if error is not None:
            errors.append(error)
    return errors


__all__ = ["ERROR_LINE_RE", "ReplayError", "parse_error_line", "parse_replay_errors"]
