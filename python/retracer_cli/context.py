"""Shared front-end state: run options plus the controller that executes them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from python.retracer import LaunchConfig, RetraceAPI, RetraceConfig, Retracer
from python.retracer.config import default_binary_dir
from python.retracer.errors import InvalidConfiguration

LOGGER = logging.getLogger("retracer_cli.context")

_TRUE_WORDS = {"1", "on", "yes", "true"}
_FALSE_WORDS = {"0", "off", "no", "false"}
_NONE_WORDS = {"off", "none", "-"}


def parse_switch(value: str) -> bool:
    text = value.strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise InvalidConfiguration(f"expected on/off, got {value!r}")


def parse_call(value: str) -> Optional[int]:
    text = value.strip().lower()
    if text in _NONE_WORDS:
        return None
    try:
        call = int(text, 16) if text.startswith("0x") else int(text)
    except ValueError:
        raise InvalidConfiguration(f"invalid call number {value!r}") from None
    if call < 0:
        raise InvalidConfiguration(f"invalid call number {value!r}")
    return call


def _optional_path(value: str) -> Optional[Path]:
    text = value.strip()
    if text.lower() in _NONE_WORDS:
        return None
    return Path(text).expanduser()


@dataclass
class RetracerContext:
    """Holds the options a front-end edits and the controller it drives.

    Options stay mutable here; ``build_config`` freezes them into a
    RetraceConfig at the moment a run starts.
    """

    api: RetraceAPI = RetraceAPI.GL
    trace_file: Optional[str] = None
    double_buffered: bool = True
    benchmarking: bool = False
    capture_state_at: Optional[int] = None
    capture_snapshots: bool = False
    snapshot_dir: Optional[Path] = None
    state_out: Optional[Path] = None
    json_output: bool = False
    binary_dir: Optional[Path] = field(default_factory=default_binary_dir)
    _retracer: Optional[Retracer] = field(default=None, init=False, repr=False)

    def build_config(self) -> RetraceConfig:
        if not self.trace_file:
            raise InvalidConfiguration("no trace file selected")
        return RetraceConfig(
            api=self.api,
            trace_file=self.trace_file,
            benchmarking=self.benchmarking,
            double_buffered=self.double_buffered,
            capture_state_at=self.capture_state_at,
            capture_snapshots=self.capture_snapshots,
        )

    def ensure_retracer(self) -> Retracer:
        if self._retracer is None:
            self._retracer = Retracer(launch_config=LaunchConfig(binary_dir=self.binary_dir))
        return self._retracer

    @property
    def retracer(self) -> Optional[Retracer]:
        return self._retracer

    def set_option(self, name: str, value: str) -> None:
        """Update one option from its textual form (used by the prompt)."""
        key = name.strip().lower().replace("_", "-")
        if key == "api":
            self.api = RetraceAPI.parse(value)
        elif key in ("file", "trace"):
            self.trace_file = value.strip() or None
        elif key in ("db", "double-buffer"):
            self.double_buffered = parse_switch(value)
        elif key in ("benchmark", "bench"):
            self.benchmarking = parse_switch(value)
        elif key == "state":
            self.capture_state_at = parse_call(value)
        elif key == "snapshots":
            try:
                self.capture_snapshots = parse_switch(value)
            except InvalidConfiguration:
                self.snapshot_dir = _optional_path(value)
                self.capture_snapshots = self.snapshot_dir is not None
        elif key == "state-out":
            self.state_out = _optional_path(value)
        elif key == "json":
            self.json_output = parse_switch(value)
        elif key in ("bin", "binary-dir"):
            if self._retracer is not None and self._retracer.is_running:
                raise InvalidConfiguration("cannot change the binary directory while a replay is running")
            self.binary_dir = _optional_path(value)
            self._retracer = None
        else:
            raise InvalidConfiguration(f"unknown option {name!r}")
        LOGGER.debug("option %s -> %r", key, value)

    def describe(self) -> Dict[str, Any]:
        return {
            "api": self.api.value,
            "trace": self.trace_file,
            "double_buffered": self.double_buffered,
            "benchmarking": self.benchmarking,
            "state_at_call": self.capture_state_at,
            "snapshots": self.capture_snapshots,
            "snapshot_dir": str(self.snapshot_dir) if self.snapshot_dir else None,
            "state_out": str(self.state_out) if self.state_out else None,
            "binary_dir": str(self.binary_dir) if self.binary_dir else None,
        }
