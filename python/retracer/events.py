"""Event bus utilities and typed events published by the retracer controller."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .decoder import CapturedState
from .diagnostics import ReplayError
from .pnm import SnapshotImage

logger = logging.getLogger(__name__)

EventHandler = Callable[["BaseEvent"], None]

STATE = "state"
SNAPSHOTS = "snapshots"
REPLAY_ERRORS = "replay_errors"
FINISHED = "finished"
ERROR = "error"


@dataclass
class BaseEvent:
    seq: int
    ts: float
    type: str
    run_id: Optional[int]
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StateCapturedEvent(BaseEvent):
    state: Optional[CapturedState] = None


@dataclass
class SnapshotsCapturedEvent(BaseEvent):
    images: List[SnapshotImage] = field(default_factory=list)


@dataclass
class ReplayErrorsEvent(BaseEvent):
    errors: List[ReplayError] = field(default_factory=list)


@dataclass
class FinishedEvent(BaseEvent):
    message: str = ""
    ok: bool = True


@dataclass
class ErrorEvent(BaseEvent):
    message: str = ""


def parse_event(event: Dict[str, Any]) -> BaseEvent:
    """Convert a raw controller event dictionary into a typed dataclass."""

    event_type = str(event.get("type") or "")
    seq = int(event.get("seq") or 0)
    run_id = event.get("run_id")
    ts = float(event.get("ts") or 0.0)
    data = event.get("data") or {}

    if event_type == STATE:
        return StateCapturedEvent(seq=seq, ts=ts, type=event_type, run_id=run_id, data=data, state=data.get("state"))
    if event_type == SNAPSHOTS:
        return SnapshotsCapturedEvent(
            seq=seq,
            ts=ts,
            type=event_type,
            run_id=run_id,
            data=data,
            images=list(data.get("images") or []),
        )
    if event_type == REPLAY_ERRORS:
        return ReplayErrorsEvent(
            seq=seq,
            ts=ts,
            type=event_type,
            run_id=run_id,
            data=data,
            errors=list(data.get("errors") or []),
        )
    if event_type == FINISHED:
        return FinishedEvent(
            seq=seq,
            ts=ts,
            type=event_type,
            run_id=run_id,
            data=data,
            message=str(data.get("message") or ""),
            ok=bool(data.get("ok", True)),
        )
    if event_type == ERROR:
        return ErrorEvent(seq=seq, ts=ts, type=event_type, run_id=run_id, data=data, message=str(data.get("message") or ""))
    return BaseEvent(seq=seq, ts=ts, type=event_type, run_id=run_id, data=data)


@dataclass
class EventSubscription:
    categories: Optional[List[str]] = None
    run_id: Optional[int] = None
    queue_size: int = 0
    handler: EventHandler = lambda event: None
    _queue: queue.Queue = field(init=False)

    def __post_init__(self) -> None:
        self._queue = queue.Queue(maxsize=self.queue_size)

    def push(self, event: BaseEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            # Drop oldest event to keep bus responsive
            try:
                self._queue.get_nowait()
            except queue.Empty:
                pass
            self._queue.put_nowait(event)

    def dispatch(self) -> None:
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                self.handler(event)
            except Exception:
                logger.exception("event handler failed for %s event", event.type)


class EventBus:
    """Fan-out filtered events to subscribers."""

    def __init__(self) -> None:
        self._subs: Dict[int, EventSubscription] = {}
        self._lock = threading.Lock()
        # one drainer at a time so handlers see events in publish order
        self._dispatch_lock = threading.RLock()
        self._next_token = 1
        self._seq = itertools.count(1)
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._interval = 0.01

    def subscribe(self, sub: EventSubscription) -> int:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subs[token] = sub
            return token

    def unsubscribe(self, token: int) -> None:
        with self._lock:
            self._subs.pop(token, None)

    def publish(self, event: Union[BaseEvent, Dict[str, Any]]) -> BaseEvent:
        if isinstance(event, BaseEvent):
            parsed = event
        else:
            raw = dict(event)
            with self._lock:
                raw.setdefault("seq", next(self._seq))
            raw.setdefault("ts", time.time())
            parsed = parse_event(raw)
        with self._lock:
            subscriptions = list(self._subs.values())
        for sub in subscriptions:
            cat_ok = not sub.categories or parsed.type in sub.categories
            run_ok = sub.run_id is None or parsed.run_id == sub.run_id
            if cat_ok and run_ok:
                sub.push(parsed)
        return parsed

    def pump(self) -> None:
        """Dispatch queued events on all subscriptions."""
        with self._dispatch_lock:
            with self._lock:
                tokens = list(self._subs.keys())
            for token in tokens:
                sub = self._subs.get(token)
                if sub:
                    sub.dispatch()

    @property
    def dispatching(self) -> bool:
        """True while the background dispatcher thread is alive."""
        worker = self._worker
        return bool(worker and worker.is_alive())

    def start(self, interval: float = 0.01) -> None:
        """Start background dispatcher that periodically pumps the bus."""

        self._interval = interval
        if self._worker and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._stop_event.set()
        worker = self._worker
        if worker and worker.is_alive():
            worker.join(timeout=0.5)
        self._worker = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.pump()
        self.pump()


def subscribe_callbacks(
    bus: EventBus,
    *,
    on_state_captured: Optional[Callable[[CapturedState], None]] = None,
    on_snapshots_captured: Optional[Callable[[List[SnapshotImage]], None]] = None,
    on_replay_errors: Optional[Callable[[List[ReplayError]], None]] = None,
    on_finished: Optional[Callable[[str], None]] = None,
    on_error: Optional[Callable[[str], None]] = None,
    run_id: Optional[int] = None,
) -> int:
    """Subscribe plain callbacks, one per consumer-facing event type."""

    def _handle(event: BaseEvent) -> None:
        if isinstance(event, StateCapturedEvent) and on_state_captured and event.state is not None:
            on_state_captured(event.state)
        elif isinstance(event, SnapshotsCapturedEvent) and on_snapshots_captured:
            on_snapshots_captured(event.images)
        elif isinstance(event, ReplayErrorsEvent) and on_replay_errors:
            on_replay_errors(event.errors)
        elif isinstance(event, FinishedEvent) and on_finished:
            on_finished(event.message)
        elif isinstance(event, ErrorEvent) and on_error:
            on_error(event.message)

    return bus.subscribe(EventSubscription(run_id=run_id, handler=_handle))


__all__ = [
    "STATE",
    "SNAPSHOTS",
    "REPLAY_ERRORS",
    "FINISHED",
    "ERROR",
    "BaseEvent",
    "StateCapturedEvent",
    "SnapshotsCapturedEvent",
    "ReplayErrorsEvent",
    "FinishedEvent",
    "ErrorEvent",
    "EventSubscription",
    "EventBus",
    "parse_event",
    "subscribe_callbacks",
]
