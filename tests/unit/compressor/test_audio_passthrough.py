"""Tests for audio passthrough."""

from pathlib import Path

import pytest

from vidshrink.compressor.audio import AudioPassthrough
from vidshrink.compressor.muxer import MuxerGate
from vidshrink.compressor.testing import (
    FakeBackend,
    FakeDemuxer,
    FakeMuxer,
    make_source,
)
from vidshrink.compressor.types import BufferFlag, MediaFormat, PipelineState


class Harness:
    def __init__(self, tmp_path: Path, audio_samples: int = 3, buffer_size: int = 64):
        self.backend = FakeBackend(make_source(audio_samples=audio_samples))
        self.demuxer: FakeDemuxer = self.backend.create_demuxer()
        self.demuxer.set_data_source(Path("input.mp4"))
        self.demuxer.select_track(1)
        self.muxer: FakeMuxer = self.backend.create_muxer(tmp_path / "o.mp4", "mp4")
        self.state = PipelineState(total_frames=1)
        self.gate = MuxerGate(self.muxer, self.state)
        self.gate.register_audio(self.demuxer.get_track_format(1))
        self.passthrough = AudioPassthrough(
            self.demuxer, self.gate, self.state, buffer_size
        )

    def start_muxer(self) -> None:
        self.gate.register_video_and_start(MediaFormat("video/avc"))


class TestAudioPassthrough:
    """Tests for AudioPassthrough.step."""

    def test_disabled_without_demuxer(self, tmp_path: Path) -> None:
        h = Harness(tmp_path)
        passthrough = AudioPassthrough(None, h.gate, h.state, 64)
        h.start_muxer()

        passthrough.step()

        assert not passthrough.enabled
        assert h.muxer.writes == []

    def test_waits_for_muxer_start(self, tmp_path: Path) -> None:
        """Audio samples stay in the demuxer until the muxer has started."""
        h = Harness(tmp_path)

        h.passthrough.step()

        assert h.muxer.writes == []
        assert h.demuxer.sample_time_us == 0

    def test_copies_samples_unmodified(self, tmp_path: Path) -> None:
        h = Harness(tmp_path)
        h.start_muxer()

        h.passthrough.step()
        h.passthrough.step()

        writes = h.muxer.writes_for(h.state.audio_track)
        assert [w[1] for w in writes] == [b"\xaa" * 8, b"\xaa" * 8]
        assert [w[2].presentation_time_us for w in writes] == [0, 21_333]
        assert all(w[2].flags & BufferFlag.KEY_FRAME for w in writes)
        assert h.passthrough.samples_copied == 2

    def test_end_of_stream(self, tmp_path: Path) -> None:
        h = Harness(tmp_path, audio_samples=2)
        h.start_muxer()

        for _ in range(3):
            h.passthrough.step()

        assert h.state.audio_finished
        assert h.passthrough.samples_copied == 2

        h.passthrough.step()
        assert h.passthrough.samples_copied == 2

    def test_oversized_sample_fails_without_resizing(self, tmp_path: Path) -> None:
        """A sample larger than the scratch buffer is an error."""
        h = Harness(tmp_path, buffer_size=4)
        h.start_muxer()

        with pytest.raises(BufferError):
            h.passthrough.step()
        assert h.muxer.writes == []
