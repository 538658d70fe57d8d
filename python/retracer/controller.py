"""Controller that runs one replay at a time and republishes its results."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

from .command import RetraceCommand, build_command
from .config import LaunchConfig, RetraceConfig
from .decoder import TERMINATED_MESSAGE, DecodedOutput, decode_outcome
from .errors import LaunchFailed, RetracerBusy
from .events import ERROR, FINISHED, REPLAY_ERRORS, SNAPSHOTS, STATE, EventBus
from .process import ProcessState, RetraceProcess

logger = logging.getLogger(__name__)


@dataclass
class _Run:
    run_id: int
    config: RetraceConfig
    command: RetraceCommand
    process: RetraceProcess
    thread: Optional[threading.Thread] = None
    finished: bool = False
    decoded: Optional[DecodedOutput] = None


class Retracer:
    """Launch a replay in the background and publish decoded events.

    For every run the bus receives, in order: the state or snapshot payload
    (when one was produced), the replay errors (when any matched), and exactly
    one ``finished`` event.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        *,
        launch_config: Optional[LaunchConfig] = None,
    ) -> None:
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.launch_config = launch_config or LaunchConfig()
        self._lock = threading.Lock()
        self._run: Optional[_Run] = None
        self._run_ids = itertools.count(1)

    @property
    def is_running(self) -> bool:
        run = self._run
        return bool(run and run.thread and run.thread.is_alive())

    @property
    def run_id(self) -> Optional[int]:
        run = self._run
        return run.run_id if run else None

    @property
    def last_output(self) -> Optional[DecodedOutput]:
        run = self._run
        return run.decoded if run else None

    def start(self, config: RetraceConfig) -> int:
        """Start a run for ``config`` and return its run id.

        Raises InvalidConfiguration before anything is launched, and
        RetracerBusy when the previous run has not finished yet.
        """
        command = build_command(config)
        with self._lock:
            if self.is_running:
                raise RetracerBusy("a replay is already running")
            run = _Run(next(self._run_ids), config, command, RetraceProcess())
            run.thread = threading.Thread(
                target=self._execute,
                args=(run,),
                name=f"retracer-run-{run.run_id}",
                daemon=True,
            )
            self._run = run
            logger.info("run %d: %s", run.run_id, command)
            # is_running must hold before the lock is released
            run.thread.start()
        return run.run_id

    def cancel(self) -> bool:
        """Terminate the active run; returns False if nothing was running."""
        run = self._run
        if run is None or not self._claim(run):
            return False
        run.process.request_termination()
        logger.info("run %d: termination requested", run.run_id)
        self._publish(run, FINISHED, message=TERMINATED_MESSAGE, ok=True)
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker of the current run; True when it has exited."""
        run = self._run
        if run is None or run.thread is None:
            return True
        run.thread.join(timeout)
        return not run.thread.is_alive()

    #
    # Worker
    #
    def _execute(self, run: _Run) -> None:
        env = self.launch_config.launch_environment()
        with self._lock:
            if run.finished:
                return
            try:
                run.process.start(run.command, env)
            except LaunchFailed as exc:
                launch_error: Optional[LaunchFailed] = exc
            else:
                launch_error = None
        if launch_error is not None:
            logger.error("run %d: %s", run.run_id, launch_error)
            self._fail(run, f"Couldn't execute the replay file '{run.config.trace_file}'")
            return

        try:
            outcome = run.process.wait()
        except Exception as exc:
            logger.exception("run %d: failed to collect replay output", run.run_id)
            self._fail(run, f"Failed to collect replay output: {exc}")
            return
        if outcome.state is ProcessState.TERMINATED and run.finished:
            return
        try:
            decoded = decode_outcome(outcome, run.config)
        except Exception as exc:
            logger.exception("run %d: failed to decode replay output", run.run_id)
            self._fail(run, f"Failed to decode replay output: {exc}")
            return
        if not self._claim(run):
            return
        run.decoded = decoded
        if decoded.state is not None:
            self._publish(run, STATE, state=decoded.state)
        if decoded.snapshots is not None:
            self._publish(run, SNAPSHOTS, images=decoded.snapshots)
        if decoded.result.errors:
            self._publish(run, REPLAY_ERRORS, errors=decoded.result.errors)
        self._publish(run, FINISHED, message=decoded.result.summary, ok=decoded.ok)

    def _claim(self, run: _Run) -> bool:
        with self._lock:
            if run.finished:
                return False
            run.finished = True
            return True

    def _fail(self, run: _Run, message: str) -> None:
        if self._claim(run):
            self._publish(run, ERROR, message=message)
            self._publish(run, FINISHED, message=message, ok=False)

    def _publish(self, run: _Run, event_type: str, **data: Any) -> None:
        self.event_bus.publish({"type": event_type, "run_id": run.run_id, "data": data})


__all__ = ["Retracer"]
