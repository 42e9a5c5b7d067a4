"""Testing utilities for the compression pipeline.

Provides an in-memory MediaBackend whose codecs follow the same slot and
poll semantics as real ones. Every collaborator call is appended to a
shared event log so tests can assert on ordering, and any call can be made
to fail on demand.

Example:
    source = make_source(width=1920, height=1080, video_frames=30)
    backend = FakeBackend(source)
    backend.fail_on.add("encoder.configure")
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vidshrink.compressor.interfaces import (
    EncoderPoll,
    Empty,
    FormatReady,
    MetadataKey,
    Sample,
)
from vidshrink.compressor.surface import FrameSurface
from vidshrink.compressor.types import (
    BufferFlag,
    BufferInfo,
    MediaFormat,
    SampleBuffer,
)

# ==============================================================================
# Source description
# ==============================================================================


@dataclass
class FakeSample:
    data: bytes
    pts_us: int
    flags: BufferFlag = BufferFlag.NONE


@dataclass
class FakeTrack:
    format: MediaFormat
    samples: list[FakeSample] = field(default_factory=list)


@dataclass
class FakeSource:
    """An in-memory media file."""

    metadata: dict[MetadataKey, str | None]
    tracks: list[FakeTrack]
    readable: bool = True


def make_source(
    width: int = 1920,
    height: int = 1080,
    duration_us: int = 1_000_000,
    frame_rate: float | None = 30.0,
    bitrate: int | None = 8_000_000,
    rotation: int = 0,
    video_frames: int = 30,
    audio_samples: int | None = 10,
    extra_tracks: list[FakeTrack] | None = None,
) -> FakeSource:
    """Build a FakeSource with one video track and optionally one audio track.

    Args:
        audio_samples: Number of audio samples, or None for no audio track.
        extra_tracks: Tracks appended after the video and audio tracks.
    """
    frame_us = int(1_000_000 / (frame_rate or 30.0))
    video = FakeTrack(
        MediaFormat("video/avc", width=width, height=height, frame_rate=frame_rate),
        [
            FakeSample(
                bytes([i % 256]) * 16,
                i * frame_us,
                BufferFlag.KEY_FRAME if i == 0 else BufferFlag.NONE,
            )
            for i in range(video_frames)
        ],
    )
    tracks = [video]
    if audio_samples is not None:
        tracks.append(
            FakeTrack(
                MediaFormat("audio/aac", sample_rate=48_000, channels=2),
                [
                    FakeSample(b"\xaa" * 8, i * 21_333, BufferFlag.KEY_FRAME)
                    for i in range(audio_samples)
                ],
            )
        )
    tracks.extend(extra_tracks or [])

    def _text(value: object | None) -> str | None:
        return None if value is None else str(value)

    return FakeSource(
        metadata={
            MetadataKey.WIDTH: str(width),
            MetadataKey.HEIGHT: str(height),
            MetadataKey.DURATION_US: str(duration_us),
            MetadataKey.FRAME_RATE: _text(frame_rate),
            MetadataKey.BITRATE: _text(bitrate),
            MetadataKey.ROTATION: str(rotation),
        },
        tracks=tracks,
    )


class InjectedFailure(RuntimeError):
    """Raised by a fake collaborator listed in FakeBackend.fail_on."""


# ==============================================================================
# Fake collaborators
# ==============================================================================


class _FakeComponent:
    name = "component"

    def __init__(self, backend: FakeBackend) -> None:
        self._backend = backend
        self.released = False

    def _record(self, operation: str, *details: Any) -> None:
        key = f"{self.name}.{operation}"
        self._backend.events.append((self.name, operation, *details))
        if key in self._backend.fail_on:
            raise InjectedFailure(f"injected failure in {key}")

    def release(self) -> None:
        self._record("release")
        self.released = True


class FakeMetadataReader(_FakeComponent):
    name = "metadata"

    def __init__(self, backend: FakeBackend) -> None:
        super().__init__(backend)
        self._source: FakeSource | None = None

    def set_data_source(self, path: Path) -> None:
        self._record("open", path)
        self._source = self._backend.open_source(path)

    def extract_metadata(self, key: MetadataKey) -> str | None:
        assert self._source is not None
        return self._source.metadata.get(key)


class FakeDemuxer(_FakeComponent):
    name = "demuxer"

    def __init__(self, backend: FakeBackend) -> None:
        super().__init__(backend)
        self._source: FakeSource | None = None
        self._track: FakeTrack | None = None
        self._cursor = 0

    @property
    def track_count(self) -> int:
        assert self._source is not None
        return len(self._source.tracks)

    @property
    def sample_time_us(self) -> int:
        sample = self._current()
        return sample.pts_us if sample else -1

    @property
    def sample_flags(self) -> BufferFlag:
        sample = self._current()
        return sample.flags if sample else BufferFlag.NONE

    def set_data_source(self, path: Path) -> None:
        self._record("open", path)
        self._source = self._backend.open_source(path)

    def get_track_format(self, index: int) -> MediaFormat:
        assert self._source is not None
        return self._source.tracks[index].format

    def select_track(self, index: int) -> None:
        assert self._source is not None
        self._record("select", index)
        self._track = self._source.tracks[index]
        self._cursor = 0

    def read_sample_data(self, buffer: bytearray, offset: int = 0) -> int:
        sample = self._current()
        if sample is None:
            return -1
        size = len(sample.data)
        if size > len(buffer) - offset:
            raise BufferError(f"sample of {size} bytes does not fit in buffer")
        buffer[offset : offset + size] = sample.data
        return size

    def advance(self) -> bool:
        self._cursor += 1
        return self._current() is not None

    def _current(self) -> FakeSample | None:
        if self._track is None or self._cursor >= len(self._track.samples):
            return None
        return self._track.samples[self._cursor]


@dataclass
class FakeFrame:
    """A decoded frame token."""

    pts_us: int
    data: bytes


class FakeDecoder(_FakeComponent):
    """Decoder with a fixed pool of input slots and a latency of ``delay``.

    Frames become available on the output side only after ``delay`` later
    samples were queued (or at end of stream), like a real decoder holding
    reference frames.
    """

    name = "decoder"

    def __init__(
        self, backend: FakeBackend, input_slots: int = 2, delay: int = 1
    ) -> None:
        super().__init__(backend)
        self._free_inputs = deque(range(input_slots))
        self._delay = delay
        self._held: deque[FakeFrame] = deque()
        self._outputs: deque[tuple[FakeFrame | None, BufferInfo]] = deque()
        self._next_output_index = 0
        self._borrowed_outputs: dict[int, FakeFrame | None] = {}
        self.surface: FrameSurface | None = None
        self.queued_inputs: list[BufferInfo] = []
        self.rendered = 0

    def configure(self, fmt: MediaFormat, surface: FrameSurface) -> None:
        self._record("configure", fmt.mime)
        self.surface = surface

    def start(self) -> None:
        self._record("start")

    def dequeue_input_buffer(self, timeout_us: int) -> SampleBuffer | None:
        self._record("dequeue_input")
        if not self._free_inputs:
            return None
        return SampleBuffer(self._free_inputs.popleft(), bytearray(4096))

    def queue_input_buffer(self, buffer: SampleBuffer) -> None:
        self._record("queue_input", buffer.info.presentation_time_us)
        self._free_inputs.append(buffer.index)
        self.queued_inputs.append(buffer.info)
        if buffer.info.is_end_of_stream:
            while self._held:
                self._emit(self._held.popleft())
            self._outputs.append(
                (None, BufferInfo(flags=BufferFlag.END_OF_STREAM))
            )
            return
        self._held.append(
            FakeFrame(buffer.info.presentation_time_us, buffer.data())
        )
        while len(self._held) > self._delay:
            self._emit(self._held.popleft())

    def dequeue_output_buffer(self, timeout_us: int) -> SampleBuffer | None:
        self._record("dequeue_output")
        if not self._outputs:
            return None
        frame, info = self._outputs.popleft()
        index = self._next_output_index
        self._next_output_index += 1
        self._borrowed_outputs[index] = frame
        return SampleBuffer(index, b"", info)

    def release_output_buffer(self, buffer: SampleBuffer, render: bool) -> None:
        self._record("release_output", render)
        frame = self._borrowed_outputs.pop(buffer.index)
        if render and frame is not None:
            assert self.surface is not None
            self.surface.publish(frame)
            self.rendered += 1

    def stop(self) -> None:
        self._record("stop")

    @property
    def outstanding_outputs(self) -> int:
        return len(self._borrowed_outputs)

    def _emit(self, frame: FakeFrame) -> None:
        self._outputs.append(
            (frame, BufferInfo(size=0, presentation_time_us=frame.pts_us))
        )


class FakeEncoder(_FakeComponent):
    """Encoder that announces its format once the first frame arrives.

    The first sample after the format announcement is a codec config
    buffer when ``emit_codec_config`` is set.
    """

    name = "encoder"

    def __init__(self, backend: FakeBackend, emit_codec_config: bool = True) -> None:
        super().__init__(backend)
        self._emit_codec_config = emit_codec_config
        self._format: MediaFormat | None = None
        self._output_format: MediaFormat | None = None
        self._pending: deque[BufferInfo | tuple[bytes, BufferInfo]] = deque()
        self._borrowed: set[int] = set()
        self._next_index = 0
        self._format_announced = False
        self._eos_queued = False
        self.surface: FrameSurface | None = None
        self.frames_encoded = 0
        self.end_of_input_signalled = False

    @property
    def output_format(self) -> MediaFormat | None:
        return self._output_format

    @property
    def outstanding_outputs(self) -> int:
        return len(self._borrowed)

    def configure(self, fmt: MediaFormat) -> None:
        self._record("configure", fmt)
        self._format = fmt

    def create_input_surface(self) -> FrameSurface:
        self._record("create_input_surface")
        self.surface = FrameSurface()
        return self.surface

    def start(self) -> None:
        self._record("start")

    def signal_end_of_input_stream(self) -> None:
        self._record("signal_end_of_input")
        self.end_of_input_signalled = True
        assert self.surface is not None
        self.surface.signal_end_of_stream()

    def poll_output(self, timeout_us: int) -> EncoderPoll:
        assert self.surface is not None and self._format is not None
        frame = self.surface.take()
        if frame is not None:
            self._encode(frame)
        if self.surface.drained and not self._eos_queued:
            self._eos_queued = True
            self._pending.append(BufferInfo(flags=BufferFlag.END_OF_STREAM))

        if not self._pending:
            return Empty()
        if not self._format_announced:
            self._format_announced = True
            self._output_format = MediaFormat(
                self._format.mime,
                width=self._format.width,
                height=self._format.height,
                frame_rate=self._format.frame_rate,
                bit_rate=self._format.bit_rate,
                extras={"csd-0": b"\x00\x00\x00\x01sps"},
            )
            self._record("format_ready")
            return FormatReady(self._output_format)

        item = self._pending.popleft()
        payload, info = item if isinstance(item, tuple) else (b"", item)
        index = self._next_index
        self._next_index += 1
        self._borrowed.add(index)
        return Sample(SampleBuffer(index, payload, info))

    def release_output_buffer(self, buffer: SampleBuffer) -> None:
        self._record("release_output")
        self._borrowed.discard(buffer.index)

    def stop(self) -> None:
        self._record("stop")

    def _encode(self, frame: FakeFrame) -> None:
        if self.frames_encoded == 0 and self._emit_codec_config:
            config = b"\x00\x00\x00\x01sps"
            self._pending.append(
                (config, BufferInfo(size=len(config), flags=BufferFlag.CODEC_CONFIG))
            )
        flags = BufferFlag.KEY_FRAME if self.frames_encoded == 0 else BufferFlag.NONE
        payload = b"enc:" + frame.data
        self._pending.append(
            (payload, BufferInfo(len(payload), frame.pts_us, flags))
        )
        self.frames_encoded += 1


class FakeMuxer(_FakeComponent):
    """Muxer that appends written payloads to the output file.

    Enforces the same ordering rules as a real container writer: no track
    may be added after start and no sample written before it.
    """

    name = "muxer"

    def __init__(self, backend: FakeBackend, path: Path, container_format: str) -> None:
        super().__init__(backend)
        self.path = path
        self.container_format = container_format
        self.orientation: int | None = None
        self.tracks: list[MediaFormat] = []
        self.started = False
        self.stopped = False
        self.writes: list[tuple[int, bytes, BufferInfo]] = []
        path.write_bytes(b"")

    def set_orientation_hint(self, degrees: int) -> None:
        self._record("orientation", degrees)
        self.orientation = degrees

    def add_track(self, fmt: MediaFormat) -> int:
        self._record("add_track", fmt.mime)
        if self.started:
            raise RuntimeError("cannot add track after start")
        self.tracks.append(fmt)
        return len(self.tracks) - 1

    def start(self) -> None:
        self._record("start")
        if not self.tracks:
            raise RuntimeError("no tracks registered")
        self.started = True

    def write_sample_data(
        self, track_index: int, payload: bytes | memoryview, info: BufferInfo
    ) -> None:
        self._record("write", track_index)
        if not self.started:
            raise RuntimeError("write before start")
        data = bytes(payload)
        copied = BufferInfo(info.size, info.presentation_time_us, info.flags)
        self.writes.append((track_index, data, copied))
        with self.path.open("ab") as f:
            f.write(data)

    def stop(self) -> None:
        self._record("stop")
        if not self.started:
            raise RuntimeError("muxer not started")
        self.stopped = True

    def writes_for(self, track_index: int) -> list[tuple[int, bytes, BufferInfo]]:
        return [w for w in self.writes if w[0] == track_index]


# ==============================================================================
# Backend
# ==============================================================================


class FakeBackend:
    """In-memory MediaBackend.

    Attributes:
        events: Every collaborator call as (component, operation, *details).
        fail_on: "component.operation" keys that raise InjectedFailure.
        created: Every collaborator the backend handed out, in order.
    """

    def __init__(
        self,
        source: FakeSource | None = None,
        sources: dict[Path, FakeSource] | None = None,
        decoder_delay: int = 1,
        emit_codec_config: bool = True,
    ) -> None:
        self._default_source = source
        self._sources = dict(sources or {})
        self.decoder_delay = decoder_delay
        self.emit_codec_config = emit_codec_config
        self.events: list[tuple[Any, ...]] = []
        self.fail_on: set[str] = set()
        self.created: list[_FakeComponent] = []

    def open_source(self, path: Path) -> FakeSource:
        source = self._sources.get(Path(path), self._default_source)
        if source is None or not source.readable:
            raise OSError(f"cannot open {path}")
        return source

    def _track(self, component: _FakeComponent, create_key: str) -> None:
        self.events.append((component.name, "create"))
        if create_key in self.fail_on:
            raise InjectedFailure(f"injected failure in {create_key}")
        self.created.append(component)

    def create_metadata_reader(self) -> FakeMetadataReader:
        reader = FakeMetadataReader(self)
        self._track(reader, "metadata.create")
        return reader

    def create_demuxer(self) -> FakeDemuxer:
        demuxer = FakeDemuxer(self)
        self._track(demuxer, "demuxer.create")
        return demuxer

    def create_decoder(self, mime: str) -> FakeDecoder:
        decoder = FakeDecoder(self, delay=self.decoder_delay)
        self._track(decoder, "decoder.create")
        return decoder

    def create_encoder(self, mime: str) -> FakeEncoder:
        encoder = FakeEncoder(self, emit_codec_config=self.emit_codec_config)
        self._track(encoder, "encoder.create")
        return encoder

    def create_muxer(self, path: Path, container_format: str) -> FakeMuxer:
        muxer = FakeMuxer(self, path, container_format)
        self._track(muxer, "muxer.create")
        return muxer

    def get(self, kind: type) -> list[Any]:
        """Return the created collaborators of type ``kind``."""
        return [c for c in self.created if isinstance(c, kind)]

    def operations(self, component: str) -> list[str]:
        """Return the operations recorded for ``component``, in order."""
        return [e[1] for e in self.events if e[0] == component]
