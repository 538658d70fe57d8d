"""Lifecycle of a single replay child process."""

from __future__ import annotations

import enum
import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Mapping, Optional

from .command import RetraceCommand
from .errors import LaunchFailed

logger = logging.getLogger(__name__)


class ProcessState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    CRASHED = "crashed"
    TERMINATED = "terminated"

    @property
    def terminal(self) -> bool:
        return self in (ProcessState.COMPLETED, ProcessState.CRASHED, ProcessState.TERMINATED)


@dataclass(frozen=True)
class ProcessOutcome:
    state: ProcessState
    exit_code: Optional[int]
    stdout: bytes = b""
    stderr: bytes = b""


class RetraceProcess:
    """Owns one replay child: spawn, collect output, terminate on request."""

    def __init__(self) -> None:
        self._state = ProcessState.IDLE
        self._state_lock = threading.Lock()
        self._popen: Optional[subprocess.Popen] = None
        self._outcome: Optional[ProcessOutcome] = None

    @property
    def state(self) -> ProcessState:
        with self._state_lock:
            return self._state

    @property
    def pid(self) -> Optional[int]:
        proc = self._popen
        return proc.pid if proc is not None else None

    @property
    def outcome(self) -> Optional[ProcessOutcome]:
        return self._outcome

    def start(self, command: RetraceCommand, env: Optional[Mapping[str, str]] = None) -> None:
        """Spawn ``command`` with stdout/stderr captured and stdin closed."""
        with self._state_lock:
            if self._state is not ProcessState.IDLE:
                raise RuntimeError(f"process already {self._state.value}")
            self._state = ProcessState.STARTING
        launch_env = dict(env) if env is not None else None
        search_path = launch_env.get("PATH") if launch_env is not None else None
        executable = shutil.which(command.executable, path=search_path)
        if executable is None:
            self._reset()
            raise LaunchFailed(f"{command.executable}: executable not found")
        logger.debug("starting %s (%s)", command, executable)
        try:
            popen = subprocess.Popen(
                [executable, *command.arguments],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=launch_env,
            )
        except OSError as exc:
            self._reset()
            raise LaunchFailed(f"{command.executable}: {exc}") from exc
        with self._state_lock:
            self._popen = popen
            if self._state is ProcessState.STARTING:
                self._state = ProcessState.RUNNING
                return
        # termination was requested while spawning
        popen.terminate()

    def wait(self) -> ProcessOutcome:
        """Block until the child exits and return the captured buffers."""
        proc = self._popen
        if proc is None:
            raise RuntimeError("process was never started")
        if self._outcome is not None:
            return self._outcome
        stdout, stderr = proc.communicate()
        code = proc.returncode
        with self._state_lock:
            if self._state is ProcessState.TERMINATED:
                state = ProcessState.TERMINATED
            elif code is not None and code < 0:
                state = ProcessState.CRASHED
            else:
                state = ProcessState.COMPLETED
            self._state = state
        logger.debug("process %s finished: state=%s code=%s", proc.pid, state.value, code)
        self._outcome = ProcessOutcome(state, code, stdout or b"", stderr or b"")
        return self._outcome

    def request_termination(self) -> bool:
        """Ask the child to terminate without waiting for it.

        Returns False when there was nothing running to terminate.
        """
        with self._state_lock:
            if self._state not in (ProcessState.STARTING, ProcessState.RUNNING):
                return False
            self._state = ProcessState.TERMINATED
            proc = self._popen
        if proc is not None and proc.poll() is None:
            try:
                proc.terminate()
            except OSError as exc:
                logger.debug("terminate failed for pid %s: %s", proc.pid, exc)
        return True

    def _reset(self) -> None:
        with self._state_lock:
            self._state = ProcessState.IDLE


__all__ = ["ProcessState", "ProcessOutcome", "RetraceProcess"]
