"""Interactive prompt for configuring and launching replays."""

from __future__ import annotations

import json
import logging
import shlex
from typing import Callable, Dict, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from python.retracer import EventBus, EventSubscription
from python.retracer.errors import InvalidConfiguration, RetracerBusy

from .context import RetracerContext
from .output import RunReporter, emit_error, emit_result

LOGGER = logging.getLogger("retracer_cli.repl")

OPTION_NAMES = [
    "api",
    "trace",
    "db",
    "benchmark",
    "state",
    "snapshots",
    "state-out",
    "json",
    "bin",
]

HELP_TEXT = """\
Commands:
  show                    print the current options
  set <option> <value>    change an option ({options})
  run [trace]             start a replay in the background
  cancel                  terminate the running replay
  wait                    block until the running replay exits
  help                    show this text
  quit                    leave the prompt (cancels a running replay)"""


class RetracerREPL:
    """prompt_toolkit front-end; events print while the prompt stays usable."""

    def __init__(self, ctx: RetracerContext) -> None:
        self.ctx = ctx
        self._handlers: Dict[str, Callable[[List[str]], Optional[int]]] = {
            "show": self._cmd_show,
            "set": self._cmd_set,
            "run": self._cmd_run,
            "cancel": self._cmd_cancel,
            "wait": self._cmd_wait,
            "help": self._cmd_help,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
        }
        self._token: Optional[int] = None
        self._bus: Optional[EventBus] = None

    @property
    def commands(self) -> List[str]:
        return sorted(self._handlers)

    def run(self) -> int:
        completer = WordCompleter(self.commands + OPTION_NAMES, ignore_case=True)
        session: PromptSession = PromptSession("retrace> ", history=InMemoryHistory(), completer=completer)
        try:
            while True:
                try:
                    with patch_stdout():
                        line = session.prompt()
                except (EOFError, KeyboardInterrupt):
                    print()
                    return self._cmd_quit([])
                status = self.execute(line)
                if status is not None:
                    return status
        finally:
            self._stop_dispatch()

    def execute(self, line: str) -> Optional[int]:
        """Run one prompt line; returns an exit status when the prompt should end."""
        try:
            argv = shlex.split(line)
        except ValueError as exc:
            emit_error(self.ctx, message=f"parse error: {exc}")
            return None
        if not argv:
            return None
        name, *args = argv
        handler = self._handlers.get(name.lower())
        if handler is None:
            emit_error(self.ctx, message=f"unknown command: {name}")
            return None
        try:
            return handler(args)
        except (InvalidConfiguration, RetracerBusy) as exc:
            emit_error(self.ctx, message=str(exc))
            return None

    def _cmd_show(self, args: List[str]) -> None:
        options = self.ctx.describe()
        if self.ctx.json_output:
            print(json.dumps(options, indent=2, sort_keys=True))
            return
        for key, value in options.items():
            print(f"  {key:<16}: {value}")

    def _cmd_set(self, args: List[str]) -> None:
        if len(args) < 2:
            emit_error(self.ctx, message="usage: set <option> <value>")
            return
        self.ctx.set_option(args[0], " ".join(args[1:]))

    def _cmd_run(self, args: List[str]) -> None:
        if args:
            self.ctx.trace_file = args[0]
        retracer = self.ctx.ensure_retracer()
        if retracer.is_running:
            raise RetracerBusy("a replay is already running; use 'cancel' or 'wait'")
        config = self.ctx.build_config()
        bus = self._start_dispatch()
        if self._token is not None:
            bus.unsubscribe(self._token)
        reporter = RunReporter(self.ctx)
        self._token = bus.subscribe(EventSubscription(handler=reporter.handle))
        run_id = retracer.start(config)
        emit_result(self.ctx, message=f"run {run_id} started: {config.trace_file}")

    def _cmd_cancel(self, args: List[str]) -> None:
        retracer = self.ctx.retracer
        if retracer is None or not retracer.cancel():
            emit_error(self.ctx, message="no replay is running")

    def _cmd_wait(self, args: List[str]) -> None:
        retracer = self.ctx.retracer
        if retracer is None:
            return
        try:
            retracer.wait()
        except KeyboardInterrupt:
            retracer.cancel()
        if not retracer.event_bus.dispatching:
            retracer.event_bus.pump()

    def _cmd_help(self, args: List[str]) -> None:
        print(HELP_TEXT.format(options=", ".join(OPTION_NAMES)))

    def _cmd_quit(self, args: List[str]) -> int:
        retracer = self.ctx.retracer
        if retracer is not None and retracer.is_running:
            retracer.cancel()
            if not retracer.event_bus.dispatching:
                retracer.event_bus.pump()
        return 0

    def _start_dispatch(self) -> EventBus:
        bus = self.ctx.ensure_retracer().event_bus
        if self._bus is bus:
            return bus
        # "set bin" replaces the controller and with it the bus
        self._stop_dispatch()
        bus.start(interval=0.05)
        self._bus = bus
        return bus

    def _stop_dispatch(self) -> None:
        if self._bus is not None:
            self._bus.stop()
        self._bus = None
        self._token = None


__all__ = ["RetracerREPL", "HELP_TEXT", "OPTION_NAMES"]
