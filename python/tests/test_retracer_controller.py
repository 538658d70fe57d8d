import json
import threading
import time

import pytest

from python.retracer.config import LaunchConfig, RetraceAPI, RetraceConfig
from python.retracer.controller import Retracer
from python.retracer.process import RetraceProcess
from python.retracer.errors import InvalidConfiguration, RetracerBusy
from python.retracer.events import (
    ErrorEvent,
    EventSubscription,
    FinishedEvent,
    ReplayErrorsEvent,
    SnapshotsCapturedEvent,
    StateCapturedEvent,
)
from python.tests import retrace_stubs
from python.tests.retrace_stubs import posix_only

TIMEOUT = 20.0


def _retracer(bin_dir):
    return Retracer(launch_config=LaunchConfig(binary_dir=bin_dir))


def _run(retracer, config):
    received = []
    retracer.event_bus.subscribe(EventSubscription(handler=received.append))
    run_id = retracer.start(config)
    assert retracer.wait(TIMEOUT)
    retracer.event_bus.pump()
    assert all(event.run_id == run_id for event in received)
    return received


def _config(trace_file, **overrides):
    values = {"api": RetraceAPI.GL, "trace_file": trace_file}
    values.update(overrides)
    return RetraceConfig(**values)


@posix_only
def test_plain_run_publishes_errors_then_finished(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.REPLAY_OK))
    events = _run(retracer, _config(trace_file))
    assert [type(event) for event in events] == [ReplayErrorsEvent, FinishedEvent]
    assert [(e.call_index, e.kind) for e in events[0].errors] == [(12, "GL_ERROR"), (40, "GL_INVALID_VALUE")]
    assert events[1].message == "Replay OK"
    assert events[1].ok
    assert retracer.last_output.result.summary == "Replay OK"
    assert not retracer.is_running


@posix_only
def test_command_line_reaches_child(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.ECHO_ARGS, name="eglretrace"))
    events = _run(retracer, _config(trace_file, api=RetraceAPI.EGL, double_buffered=False, benchmarking=True))
    assert [type(event) for event in events] == [FinishedEvent]
    assert json.loads(events[0].message) == ["-sb", "-b", trace_file]


@posix_only
def test_state_capture_publishes_state_before_finished(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.STATE_DUMP))
    events = _run(retracer, _config(trace_file, capture_state_at=10))
    assert [type(event) for event in events] == [StateCapturedEvent, FinishedEvent]
    state = events[0].state
    assert list(state) == ["framebuffer", "parameters"]
    assert list(state["parameters"]) == ["GL_BLEND", "GL_VIEWPORT"]
    assert events[1].message == "State fetched."


@posix_only
def test_bad_state_reports_parse_failure(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.BAD_STATE_DUMP))
    events = _run(retracer, _config(trace_file, capture_state_at=10))
    assert [type(event) for event in events] == [FinishedEvent]
    assert events[0].message.startswith("Failed to parse captured state")
    assert events[0].ok is False


@posix_only
def test_snapshot_capture_publishes_images(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.SNAPSHOTS))
    events = _run(retracer, _config(trace_file, capture_snapshots=True))
    assert [type(event) for event in events] == [SnapshotsCapturedEvent, FinishedEvent]
    images = events[0].images
    assert [(i.width, i.height, i.channels) for i in images] == [(2, 2, 3), (3, 1, 1)]
    assert images[1].pixels == b"\x01\x02\x03"
    assert events[1].message == "Snaps fetched"


@posix_only
def test_non_zero_exit_run(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.NON_ZERO_EXIT))
    events = _run(retracer, _config(trace_file))
    assert [type(event) for event in events] == [ReplayErrorsEvent, FinishedEvent]
    assert events[1].message == "Process exited with non zero exit code"
    assert events[1].ok is False


@posix_only
def test_crashed_run_ignores_stdout(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.CRASH))
    events = _run(retracer, _config(trace_file, capture_state_at=1))
    assert [type(event) for event in events] == [ReplayErrorsEvent, FinishedEvent]
    assert events[1].message == "Process crashed"


def test_launch_failure_publishes_error_and_finished(empty_bin, trace_file):
    retracer = Retracer(launch_config=LaunchConfig(binary_dir=empty_bin, base_env={"PATH": ""}))
    events = _run(retracer, _config(trace_file))
    assert [type(event) for event in events] == [ErrorEvent, FinishedEvent]
    assert events[0].message == f"Couldn't execute the replay file '{trace_file}'"
    assert events[1].message == events[0].message
    assert events[1].ok is False


def test_invalid_configuration_raised_before_launch(empty_bin):
    retracer = _retracer(empty_bin)
    with pytest.raises(InvalidConfiguration):
        retracer.start(_config("a.trace", api="d3d11"))
    assert retracer.run_id is None
    assert not retracer.is_running


@posix_only
def test_cancel_emits_single_terminated_event(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.SLEEP))
    received = []
    retracer.event_bus.subscribe(EventSubscription(handler=received.append))
    retracer.start(_config(trace_file, capture_snapshots=True))
    time.sleep(0.2)
    started = time.monotonic()
    assert retracer.cancel() is True
    assert time.monotonic() - started < 1.0
    assert retracer.cancel() is False
    assert retracer.wait(TIMEOUT)
    retracer.event_bus.pump()
    assert [type(event) for event in received] == [FinishedEvent]
    assert received[0].message == "Process terminated."


@posix_only
def test_cancel_right_after_start(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.SLEEP))
    received = []
    retracer.event_bus.subscribe(EventSubscription(handler=received.append))
    retracer.start(_config(trace_file))
    retracer.cancel()
    assert retracer.wait(TIMEOUT)
    retracer.event_bus.pump()
    assert [event.message for event in received] == ["Process terminated."]


@posix_only
def test_not_reentrant_while_running(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.SLEEP))
    retracer.start(_config(trace_file))
    try:
        with pytest.raises(RetracerBusy):
            retracer.start(_config(trace_file))
    finally:
        retracer.cancel()
        assert retracer.wait(TIMEOUT)


@posix_only
def test_runs_get_new_ids_and_can_follow_each_other(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.REPLAY_OK))
    first = retracer.start(_config(trace_file))
    assert retracer.wait(TIMEOUT)
    second = retracer.start(_config(trace_file))
    assert retracer.wait(TIMEOUT)
    assert second == first + 1
    assert retracer.run_id == second


def test_cancel_without_run():
    assert Retracer().cancel() is False
    assert Retracer().wait(0.1) is True


@posix_only
def test_concurrent_starts_launch_one_run(fake_retrace, trace_file):
    retracer = _retracer(fake_retrace(retrace_stubs.SLEEP))
    barrier = threading.Barrier(4)
    started = []
    refused = []

    def attempt():
        barrier.wait()
        try:
            started.append(retracer.start(_config(trace_file)))
        except RetracerBusy:
            refused.append(True)

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(TIMEOUT)
    try:
        assert len(started) == 1
        assert len(refused) == 3
        assert retracer.run_id == started[0]
    finally:
        retracer.cancel()
        assert retracer.wait(TIMEOUT)


@posix_only
def test_output_collection_failure_still_finishes(fake_retrace, trace_file, monkeypatch):
    def broken_wait(self):
        raise OSError("pipe closed")

    monkeypatch.setattr(RetraceProcess, "wait", broken_wait)
    retracer = _retracer(fake_retrace(retrace_stubs.REPLAY_OK))
    events = _run(retracer, _config(trace_file))
    assert [type(event) for event in events] == [ErrorEvent, FinishedEvent]
    assert events[0].message == "Failed to collect replay output: pipe closed"
    assert events[1].ok is False
    assert not retracer.is_running
