import itertools
from pathlib import Path

import pytest

from python.retracer.command import RetraceCommand, build_command, executable_for
from python.retracer.config import RetraceAPI, RetraceConfig, RetraceMode
from python.retracer.errors import InvalidConfiguration


def _config(**overrides):
    values = {"api": RetraceAPI.GL, "trace_file": "frame.trace"}
    values.update(overrides)
    return RetraceConfig(**values)


def test_gl_default_command_line():
    command = build_command(_config())
    assert command.executable == "glretrace"
    assert command.arguments == ("-db", "frame.trace")
    assert command.argv == ["glretrace", "-db", "frame.trace"]
    assert str(command) == "glretrace -db frame.trace"


def test_egl_single_buffered_benchmark():
    command = build_command(_config(api=RetraceAPI.EGL, double_buffered=False, benchmarking=True))
    assert command.argv == ["eglretrace", "-sb", "-b", "frame.trace"]


def test_state_capture_emits_call_number():
    command = build_command(_config(capture_state_at=1234))
    assert command.arguments == ("-db", "-D", "1234", "frame.trace")


def test_snapshots_go_to_stdout():
    command = build_command(_config(capture_snapshots=True, double_buffered=False))
    assert command.arguments == ("-sb", "-s", "-", "frame.trace")


def test_both_captures_keep_order_and_drop_benchmark():
    command = build_command(_config(capture_state_at=5, capture_snapshots=True, benchmarking=True))
    assert command.arguments == ("-db", "-D", "5", "-s", "-", "frame.trace")
    assert "-b" not in command.arguments


@pytest.mark.parametrize(
    "double_buffered,benchmarking,api",
    list(itertools.product([True, False], [True, False], list(RetraceAPI))),
)
def test_without_capture_no_capture_tokens(double_buffered, benchmarking, api):
    command = build_command(_config(api=api, double_buffered=double_buffered, benchmarking=benchmarking))
    for token in ("-D", "-s", "-"):
        assert token not in command.arguments
    assert command.arguments.count("-b") == (1 if benchmarking else 0)
    assert command.arguments[-1] == "frame.trace"


def test_trace_path_accepts_pathlike(tmp_path):
    trace = tmp_path / "with space.trace"
    config = _config(trace_file=trace)
    assert config.trace_file == str(trace)
    assert build_command(config).arguments[-1] == str(trace)


def test_unknown_api_is_invalid_configuration():
    with pytest.raises(InvalidConfiguration):
        build_command(_config(api="vulkan"))
    with pytest.raises(InvalidConfiguration):
        executable_for(None)


def test_invalid_capture_call_rejected():
    with pytest.raises(InvalidConfiguration):
        build_command(_config(capture_state_at=-1))
    with pytest.raises(InvalidConfiguration):
        build_command(_config(capture_state_at=True))


def test_empty_trace_path_rejected():
    with pytest.raises(InvalidConfiguration):
        build_command(_config(trace_file=""))


def test_executable_lookup_and_api_parsing():
    assert executable_for(RetraceAPI.GL) == "glretrace"
    assert executable_for(RetraceAPI.EGL) == "eglretrace"
    assert RetraceAPI.parse("EGL") is RetraceAPI.EGL
    assert RetraceAPI.parse(RetraceAPI.GL) is RetraceAPI.GL
    with pytest.raises(InvalidConfiguration):
        RetraceAPI.parse("d3d9")


def test_config_mode_selection():
    assert _config().mode is RetraceMode.REPLAY
    assert _config(benchmarking=True).mode is RetraceMode.BENCHMARK
    assert _config(capture_snapshots=True, benchmarking=True).mode is RetraceMode.SNAPSHOTS
    assert _config(capture_state_at=0, capture_snapshots=True).mode is RetraceMode.STATE


def test_command_is_immutable():
    command = RetraceCommand("glretrace", ("-db", "x.trace"))
    with pytest.raises(AttributeError):
        command.executable = "other"  # type: ignore[misc]
    with pytest.raises(AttributeError):
        _config().api = RetraceAPI.EGL  # type: ignore[misc]


def test_command_path_not_touched():
    # the builder never resolves paths; the trace is passed through verbatim
    assert build_command(_config(trace_file="relative/dir/a.trace")).arguments[-1] == "relative/dir/a.trace"
    assert isinstance(build_command(_config(trace_file=Path("b.trace"))).arguments[-1], str)
