"""Shared test fixtures for vidshrink."""

import logging
from pathlib import Path

import pytest

from vidshrink.compressor.testing import FakeBackend, FakeSource, make_source
from vidshrink.compressor.types import PipelineState


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Restore root logger handlers and level after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def source() -> FakeSource:
    """A 1 second 1920x1080 30 fps source with 30 frames and 10 audio samples."""
    return make_source()


@pytest.fixture
def backend(source: FakeSource) -> FakeBackend:
    """Fake backend serving ``source`` for every path."""
    return FakeBackend(source)


@pytest.fixture
def input_file(tmp_path: Path) -> Path:
    """A readable input file; its content is ignored by the fake backend."""
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\x00" * 64)
    return path


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"


@pytest.fixture
def state() -> PipelineState:
    return PipelineState(total_frames=30)
