"""retracer command line entry point."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List

from python.retracer import EventSubscription, RetraceAPI
from python.retracer.config import LOG_LEVEL_ENV, default_binary_dir
from python.retracer.errors import InvalidConfiguration, RetracerBusy

from .context import RetracerContext
from .output import RunReporter, emit_error

LOG = logging.getLogger("retracer_cli.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay a graphics API trace and decode the results")
    parser.add_argument("trace", nargs="?", help="Trace file to replay")
    parser.add_argument("--api", choices=[api.value for api in RetraceAPI], default="gl", help="Graphics API of the trace")
    parser.add_argument("--single-buffer", action="store_true", help="Replay single buffered (-sb)")
    parser.add_argument("--benchmark", action="store_true", help="Benchmark the replay (ignored when capturing)")
    parser.add_argument("--dump-state", type=int, metavar="CALL", help="Dump the state at call number CALL")
    parser.add_argument(
        "--snapshots",
        type=Path,
        metavar="DIR",
        help="Capture frame snapshots and write them to DIR",
    )
    parser.add_argument("--state-out", type=Path, metavar="FILE", help="Write the dumped state to FILE")
    parser.add_argument(
        "--binary-dir",
        type=Path,
        default=default_binary_dir(),
        help="Directory containing glretrace/eglretrace (default $RETRACER_BINARY_DIR)",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON output")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(LOG_LEVEL_ENV, "INFO"),
        help="Logging level (default INFO)",
    )
    parser.add_argument("-i", "--interactive", action="store_true", help="Start the interactive prompt")
    return parser


def context_from_args(args: argparse.Namespace) -> RetracerContext:
    return RetracerContext(
        api=RetraceAPI.parse(args.api),
        trace_file=args.trace,
        double_buffered=not args.single_buffer,
        benchmarking=args.benchmark,
        capture_state_at=args.dump_state,
        capture_snapshots=args.snapshots is not None,
        snapshot_dir=args.snapshots,
        state_out=args.state_out,
        json_output=args.json,
        binary_dir=args.binary_dir,
    )


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    ctx = context_from_args(args)
    if args.interactive:
        from .repl import RetracerREPL

        return RetracerREPL(ctx).run()
    if not ctx.trace_file:
        parser.error("a trace file is required unless --interactive is given")
    return run_once(ctx)


def run_once(ctx: RetracerContext, *, poll_interval: float = 0.02) -> int:
    """Run one replay to completion, rendering its events as they arrive."""
    retracer = ctx.ensure_retracer()
    reporter = RunReporter(ctx)
    bus = retracer.event_bus
    token = bus.subscribe(EventSubscription(handler=reporter.handle))
    try:
        try:
            retracer.start(ctx.build_config())
        except (InvalidConfiguration, RetracerBusy) as exc:
            emit_error(ctx, message=str(exc))
            return EXIT_USAGE
        try:
            while not reporter.done.is_set():
                bus.pump()
                if not reporter.done.is_set():
                    time.sleep(poll_interval)
        except KeyboardInterrupt:
            retracer.cancel()
            bus.pump()
            return EXIT_INTERRUPTED
        retracer.wait()
    finally:
        bus.unsubscribe(token)
    return EXIT_OK if reporter.ok else EXIT_FAILED


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
