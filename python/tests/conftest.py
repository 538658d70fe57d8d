"""
Pytest configuration and fixtures for retracer tests.
"""
import stat
import sys
import textwrap
from pathlib import Path

import pytest


@pytest.fixture
def fake_retrace(tmp_path):
    """
    Write a Python script named like a replay executable into a private bin
    directory and return that directory (to be prefixed onto PATH).
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(body: str, name: str = "glretrace") -> Path:
        script = bin_dir / name
        script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body), encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return bin_dir

    return _make


@pytest.fixture
def trace_file(tmp_path):
    path = tmp_path / "app.trace"
    path.write_bytes(b"\x00trace")
    return str(path)


@pytest.fixture
def empty_bin(tmp_path):
    path = tmp_path / "empty-bin"
    path.mkdir()
    return path
