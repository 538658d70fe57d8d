"""Output helpers for the retracer front-ends."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from python.retracer import (
    BaseEvent,
    CapturedState,
    ErrorEvent,
    FinishedEvent,
    ReplayError,
    ReplayErrorsEvent,
    SnapshotImage,
    SnapshotsCapturedEvent,
    StateCapturedEvent,
)

from .context import RetracerContext

LOGGER = logging.getLogger("retracer_cli.output")


def _json_dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, sort_keys=True)


def emit_result(ctx: RetracerContext, *, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
    """Emit a successful result."""
    if ctx.json_output:
        payload: Dict[str, Any] = {"status": "ok", "message": message}
        if data is not None:
            payload["result"] = data
        print(_json_dump(payload))
    else:
        print(message)


def emit_error(ctx: RetracerContext, *, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
    """Emit an error message respecting JSON mode."""
    payload: Dict[str, Any] = {"status": "error", "error": message}
    if data:
        payload["details"] = dict(data)
    if ctx.json_output:
        print(_json_dump(payload))
    else:
        print(f"error: {message}")


def render_replay_errors(errors: Sequence[ReplayError]) -> None:
    """Print replay errors as a call / kind / message table."""
    if not errors:
        return
    print(f"  replay errors ({len(errors)}):")
    print("      Call  Kind                  Message")
    print("      " + "-" * 58)
    for error in errors:
        print(f"    {error.call_index:>6}  {error.kind:<20}  {error.message}")


def write_snapshots(images: Sequence[SnapshotImage], directory: Path, *, prefix: str = "snapshot") -> List[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    paths: List[Path] = []
    for index, image in enumerate(images):
        path = directory / f"{prefix}-{index:04d}{image.suffix}"
        path.write_bytes(image.to_pnm())
        paths.append(path)
    return paths


def write_state(state: CapturedState, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(state.to_json() + "\n", encoding="utf-8")
    return path


def _describe_image(image: SnapshotImage, path: Optional[Path] = None) -> Dict[str, Any]:
    info: Dict[str, Any] = {"width": image.width, "height": image.height, "channels": image.channels}
    if path is not None:
        info["path"] = str(path)
    return info


class RunReporter:
    """Event handler that renders one run and remembers how it ended."""

    def __init__(self, ctx: RetracerContext) -> None:
        self.ctx = ctx
        self.done = threading.Event()
        self.ok = True
        self.message: Optional[str] = None
        self._result: Dict[str, Any] = {}
        self._errors: List[str] = []

    def handle(self, event: BaseEvent) -> None:
        if isinstance(event, StateCapturedEvent) and event.state is not None:
            self._on_state(event.state)
        elif isinstance(event, SnapshotsCapturedEvent):
            self._on_snapshots(event.images)
        elif isinstance(event, ReplayErrorsEvent):
            self._result["errors"] = [error.to_dict() for error in event.errors]
            if not self.ctx.json_output:
                render_replay_errors(event.errors)
        elif isinstance(event, ErrorEvent):
            self._errors.append(event.message)
            LOGGER.debug("run %s reported error: %s", event.run_id, event.message)
        elif isinstance(event, FinishedEvent):
            self._on_finished(event)

    def _on_state(self, state: CapturedState) -> None:
        if self.ctx.state_out is not None:
            path = write_state(state, self.ctx.state_out)
            self._result["state_file"] = str(path)
            if not self.ctx.json_output:
                print(f"  state written to {path}")
        elif self.ctx.json_output:
            self._result["state"] = dict(state)
        else:
            print(state.to_json())

    def _on_snapshots(self, images: Sequence[SnapshotImage]) -> None:
        paths: List[Optional[Path]] = [None] * len(images)
        if self.ctx.snapshot_dir is not None:
            paths = list(write_snapshots(images, self.ctx.snapshot_dir))
        self._result["snapshots"] = [_describe_image(image, path) for image, path in zip(images, paths)]
        if not self.ctx.json_output:
            print(f"  snapshots: {len(images)}")
            for image, path in zip(images, paths):
                where = f" -> {path}" if path is not None else ""
                print(f"    {image.width}x{image.height}x{image.channels}{where}")

    def _on_finished(self, event: FinishedEvent) -> None:
        self.ok = event.ok and not self._errors
        self.message = event.message
        if self.ok:
            emit_result(self.ctx, message=event.message, data=self._result or None)
        else:
            details = dict(self._result)
            if self._errors:
                details["errors_reported"] = list(self._errors)
            emit_error(self.ctx, message=event.message, data=details)
        self.done.set()


__all__ = [
    "emit_result",
    "emit_error",
    "render_replay_errors",
    "write_snapshots",
    "write_state",
    "RunReporter",
]
