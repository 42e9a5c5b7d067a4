"""Tests for the PyAV media backend."""

from fractions import Fraction
from pathlib import Path

import pytest

av = pytest.importorskip("av")

from av.error import InvalidDataError  # noqa: E402

from vidshrink.backends.pyav import (  # noqa: E402
    PyAVBackend,
    PyAVDecoder,
    PyAVDemuxer,
    PyAVMetadataReader,
    PyAVMuxer,
    _encoder_options,
    codec_name_for,
    mime_for,
    to_microseconds,
)
from vidshrink.compressor import (  # noqa: E402
    CodecError,
    ErrorKind,
    VideoCompressor,
    probe_video_info,
)
from vidshrink.compressor.errors import codec_operation  # noqa: E402
from vidshrink.compressor.interfaces import MetadataKey  # noqa: E402
from vidshrink.compressor.types import (  # noqa: E402
    BufferInfo,
    MediaFormat,
    SampleBuffer,
)
from vidshrink.config.models import CompressionConfig  # noqa: E402
from vidshrink.staging import DirectoryOutputLocation, LocalFileStager  # noqa: E402

WIDTH, HEIGHT = 64, 48


def _write_clip(
    path: Path, frames: int = 30, with_audio: bool = True, rotation: int = 0
) -> None:
    """Write a short mpeg4 (+ aac) clip with flat-colored frames."""
    with av.open(str(path), "w", format="mp4") as container:
        video = container.add_stream("mpeg4", rate=30)
        video.width = WIDTH
        video.height = HEIGHT
        video.pix_fmt = "yuv420p"
        if rotation:
            video.set_display_rotation(rotation)
        audio = container.add_stream("aac", rate=48_000) if with_audio else None

        for i in range(frames):
            frame = av.VideoFrame(WIDTH, HEIGHT, "yuv420p")
            for plane in frame.planes:
                plane.update(bytes([(i * 8) % 256]) * plane.buffer_size)
            frame.pts = i
            frame.time_base = Fraction(1, 30)
            container.mux(video.encode(frame))
        container.mux(video.encode(None))

        if audio is not None:
            for i in range(frames // 30 * 47):
                samples = av.AudioFrame(format="fltp", layout="stereo", samples=1024)
                for plane in samples.planes:
                    plane.update(bytes(plane.buffer_size))
                samples.sample_rate = 48_000
                samples.pts = i * 1024
                samples.time_base = Fraction(1, 48_000)
                container.mux(audio.encode(samples))
            container.mux(audio.encode(None))


@pytest.fixture
def clip(tmp_path: Path) -> Path:
    path = tmp_path / "clip.mp4"
    _write_clip(path)
    return path


@pytest.fixture
def rotated_clip(tmp_path: Path) -> Path:
    path = tmp_path / "rotated.mp4"
    _write_clip(path, rotation=90)
    return path


class TestCodecNames:
    """Tests for mime/codec name mapping."""

    def test_mime_for_known_codec(self) -> None:
        assert mime_for("video", "h264") == "video/avc"
        assert mime_for("audio", "aac") == "audio/mp4a-latm"

    def test_mime_for_unknown_codec(self) -> None:
        assert mime_for("video", "prores") == "video/prores"

    @pytest.mark.parametrize(
        ("mime", "codec"),
        [
            ("video/avc", "h264"),
            ("video/hevc", "hevc"),
            ("video/mp4v-es", "mpeg4"),
            ("audio/mp4a-latm", "aac"),
            ("audio/aac", "aac"),
            ("video/prores", "prores"),
        ],
    )
    def test_codec_name_for(self, mime: str, codec: str) -> None:
        assert codec_name_for(mime) == codec


class TestToMicroseconds:
    """Tests for timestamp conversion."""

    def test_converts_time_base(self) -> None:
        assert to_microseconds(90_000, Fraction(1, 90_000)) == 1_000_000

    def test_none_value(self) -> None:
        assert to_microseconds(None, Fraction(1, 1000)) is None

    def test_missing_time_base_passes_through(self) -> None:
        assert to_microseconds(5, None) == 5


class TestEncoderOptions:
    """Tests for encoder option mapping."""

    def test_profile_and_level(self) -> None:
        fmt = MediaFormat("video/avc", extras={"profile": "baseline", "level": "3"})
        assert _encoder_options(fmt) == {"profile": "baseline", "level": "3"}

    def test_empty_values_omitted(self) -> None:
        fmt = MediaFormat("video/avc", extras={"profile": "", "level": None})
        assert _encoder_options(fmt) == {}


class TestOpenErrors:
    """Unreadable inputs and outputs surface as OSError."""

    def test_metadata_reader_garbage_file(self, tmp_path: Path) -> None:
        path = tmp_path / "garbage.mp4"
        path.write_bytes(b"not a video" * 10)

        with pytest.raises(OSError):
            PyAVMetadataReader().set_data_source(path)

    def test_demuxer_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            PyAVDemuxer().set_data_source(tmp_path / "missing.mp4")

    def test_muxer_missing_directory(self, tmp_path: Path) -> None:
        """A missing directory fails at construction, not at start."""
        with pytest.raises(OSError, match="is not a directory"):
            PyAVMuxer(tmp_path / "missing" / "out.mp4", "mp4")


class TestMuxerOrdering:
    """Tests for PyAVMuxer call-order checks."""

    def test_write_before_start(self, tmp_path: Path) -> None:
        muxer = PyAVMuxer(tmp_path / "out.mp4", "mp4")
        try:
            with pytest.raises(RuntimeError, match="not started"):
                muxer.write_sample_data(0, b"x", BufferInfo(1, 0))
            with pytest.raises(RuntimeError, match="not started"):
                muxer.stop()
        finally:
            muxer.release()

    def test_audio_track_needs_source_stream(self, tmp_path: Path) -> None:
        muxer = PyAVMuxer(tmp_path / "out.mp4", "mp4")
        try:
            with pytest.raises(ValueError, match="no source stream"):
                muxer.add_track(MediaFormat("audio/mp4a-latm", sample_rate=48_000))
        finally:
            muxer.release()


class _CorruptContext:
    """Codec context whose decode always rejects the packet."""

    def decode(self, packet):
        raise InvalidDataError(
            -1094995529, "Invalid data found when processing input"
        )


class TestDecoderErrors:
    """Decode failures propagate to the pipeline."""

    def test_undecodable_packet_fails_feed(self) -> None:
        """A packet the codec rejects fails the run instead of being skipped."""
        decoder = PyAVDecoder("video/avc")
        decoder._ctx = _CorruptContext()
        payload = bytearray(b"\x00\x00\x01\xff" * 4)
        buffer = SampleBuffer(0, payload, BufferInfo(len(payload), 40_000))

        with pytest.raises(CodecError) as exc_info:
            with codec_operation("decoder", "feed input"):
                decoder.queue_input_buffer(buffer)

        assert exc_info.value.kind is ErrorKind.COMPRESSION_FAILURE
        assert "decoder feed input failed" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, InvalidDataError)


@pytest.mark.integration
class TestWithSynthesizedClip:
    """End-to-end checks against a clip written with PyAV."""

    def test_metadata(self, clip: Path) -> None:
        reader = PyAVMetadataReader()
        reader.set_data_source(clip)
        try:
            assert reader.extract_metadata(MetadataKey.WIDTH) == str(WIDTH)
            assert reader.extract_metadata(MetadataKey.HEIGHT) == str(HEIGHT)
            assert reader.extract_metadata(MetadataKey.FRAME_RATE) == "30/1"
            assert reader.extract_metadata(MetadataKey.ROTATION) == "0"
            assert int(reader.extract_metadata(MetadataKey.DURATION_US)) > 0
        finally:
            reader.release()

    def test_probe(self, clip: Path) -> None:
        info = probe_video_info(PyAVBackend(), clip)

        assert (info.width, info.height) == (WIDTH, HEIGHT)
        assert info.frame_rate == pytest.approx(30.0)

    def test_demuxer_tracks(self, clip: Path) -> None:
        demuxer = PyAVDemuxer()
        demuxer.set_data_source(clip)
        try:
            assert demuxer.track_count == 2
            video = demuxer.get_track_format(0)
            assert video.mime == "video/mp4v-es"
            assert (video.width, video.height) == (WIDTH, HEIGHT)
            assert demuxer.get_track_format(1).mime == "audio/mp4a-latm"

            demuxer.select_track(0)
            buffer = bytearray(1024 * 1024)
            count = 0
            while demuxer.read_sample_data(buffer) >= 0:
                count += 1
                demuxer.advance()
            assert count == 30
            assert demuxer.sample_time_us == -1
        finally:
            demuxer.release()

    def test_compress(self, clip: Path, tmp_path: Path) -> None:
        if "libx264" not in av.codecs_available:
            pytest.skip("libx264 not available")
        compressor = VideoCompressor(
            PyAVBackend(),
            CompressionConfig(output_frame_rate=None),
            LocalFileStager(copy_inputs=False),
            DirectoryOutputLocation(tmp_path / "out"),
        )

        output = compressor.transcode_sync(clip)

        with av.open(str(output)) as container:
            assert container.streams.video[0].codec_context.name == "h264"
            assert container.streams.video[0].codec_context.width == WIDTH
            assert len(container.streams.audio) == 1
            packets = [
                p for p in container.demux(container.streams.video[0]) if p.size
            ]
        assert len(packets) == 30

    def test_rotation_read_from_display_matrix(self, rotated_clip: Path) -> None:
        """Rotation comes from the stream's display matrix."""
        info = probe_video_info(PyAVBackend(), rotated_clip)

        assert info.rotation == 90

    def test_compress_keeps_rotation(self, rotated_clip: Path, tmp_path: Path) -> None:
        """The output carries the source rotation in its display matrix."""
        if "libx264" not in av.codecs_available:
            pytest.skip("libx264 not available")
        compressor = VideoCompressor(
            PyAVBackend(),
            CompressionConfig(output_frame_rate=None),
            LocalFileStager(copy_inputs=False),
            DirectoryOutputLocation(tmp_path / "out"),
        )

        output = compressor.transcode_sync(rotated_clip)

        with av.open(str(output)) as container:
            frame = next(container.decode(container.streams.video[0]))
        assert round(frame.rotation) % 360 == 90
