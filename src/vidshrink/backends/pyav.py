"""MediaBackend built on PyAV (FFmpeg's libav* libraries).

Maps the pipeline's slot-and-poll collaborator model onto PyAV:

- demuxers iterate ``container.demux(stream)`` one packet at a time
- the decoder and encoder are standalone ``av.CodecContext`` objects
- decoded ``av.VideoFrame`` objects travel through the FrameSurface
- the muxer owns an output container; the audio stream is copied from
  the source stream, the video stream mirrors the encoder's settings

All timestamps crossing the backend boundary are in microseconds.
"""

from __future__ import annotations

import logging
from collections import deque
from fractions import Fraction
from pathlib import Path
from typing import Any

import av
from av.error import FFmpegError

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

logger = logging.getLogger(__name__)

MICROSECONDS = Fraction(1, 1_000_000)

# FFmpeg codec name <-> mime subtype
_MIME_SUBTYPES: dict[str, str] = {
    "h264": "avc",
    "hevc": "hevc",
    "mpeg4": "mp4v-es",
    "vp8": "x-vnd.on2.vp8",
    "vp9": "x-vnd.on2.vp9",
    "av1": "av01",
    "aac": "mp4a-latm",
    "mp3": "mpeg",
    "opus": "opus",
}
_CODEC_NAMES: dict[str, str] = {v: k for k, v in _MIME_SUBTYPES.items()}
_CODEC_NAMES["aac"] = "aac"

# Software encoders for each output mime type
_ENCODERS: dict[str, str] = {
    "video/avc": "libx264",
    "video/hevc": "libx265",
}

_MIN_DECODER_SLOT = 1024 * 1024


def mime_for(media_type: str, codec_name: str) -> str:
    """Return the mime type for an FFmpeg codec name ("h264" -> "video/avc")."""
    return f"{media_type}/{_MIME_SUBTYPES.get(codec_name, codec_name)}"


def codec_name_for(mime: str) -> str:
    """Return the FFmpeg decoder name for a mime type ("video/avc" -> "h264")."""
    subtype = mime.partition("/")[2]
    return _CODEC_NAMES.get(subtype, subtype)


def to_microseconds(value: int | None, time_base: Fraction | None) -> int | None:
    if value is None:
        return None
    if time_base is None:
        return value
    return int(value * time_base / MICROSECONDS)


def _open_input(path: Path) -> av.container.InputContainer:
    try:
        return av.open(str(path))
    except FFmpegError as e:
        raise OSError(f"cannot open {path}: {e}") from e


# =============================================================================
# Metadata
# =============================================================================


class PyAVMetadataReader:
    """Reads container and first-video-stream metadata as strings."""

    def __init__(self) -> None:
        self._container: av.container.InputContainer | None = None
        self._rotation: int | None = None

    def set_data_source(self, path: Path) -> None:
        self._container = _open_input(path)
        self._rotation = None

    def extract_metadata(self, key: MetadataKey) -> str | None:
        container = self._container
        if container is None:
            return None
        if key is MetadataKey.DURATION_US:
            # container.duration is expressed in AV_TIME_BASE (microseconds)
            return None if container.duration is None else str(container.duration)

        video = container.streams.video[0] if container.streams.video else None
        if video is None:
            return None
        ctx = video.codec_context

        if key is MetadataKey.WIDTH:
            return str(ctx.width)
        if key is MetadataKey.HEIGHT:
            return str(ctx.height)
        if key is MetadataKey.FRAME_RATE:
            rate = video.average_rate or video.guessed_rate
            return None if rate is None else f"{rate.numerator}/{rate.denominator}"
        if key is MetadataKey.BITRATE:
            bit_rate = container.bit_rate or ctx.bit_rate
            return str(bit_rate) if bit_rate else None
        if key is MetadataKey.ROTATION:
            return self._display_rotation(container, video)
        return None

    def release(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None

    def _display_rotation(
        self, container: av.container.InputContainer, video: Any
    ) -> str | None:
        # Rotation lives in the display matrix, which decoders attach to
        # every frame; the first frame is enough.
        if self._rotation is None:
            try:
                frame = next(container.decode(video), None)
            except FFmpegError as e:
                logger.warning("Cannot decode a frame to read rotation: %s", e)
                return None
            self._rotation = 0 if frame is None else round(frame.rotation)
        return str(self._rotation)


# =============================================================================
# Demuxer
# =============================================================================


class PyAVDemuxer:
    """Walks the packets of one selected stream."""

    def __init__(self) -> None:
        self._container: av.container.InputContainer | None = None
        self._packets: Any = None
        self._current: av.Packet | None = None

    @property
    def track_count(self) -> int:
        return len(self._require_container().streams)

    @property
    def sample_time_us(self) -> int:
        packet = self._current
        if packet is None:
            return -1
        timestamp = packet.pts if packet.pts is not None else packet.dts
        return to_microseconds(timestamp, packet.time_base) or 0

    @property
    def sample_flags(self) -> BufferFlag:
        packet = self._current
        if packet is not None and packet.is_keyframe:
            return BufferFlag.KEY_FRAME
        return BufferFlag.NONE

    def set_data_source(self, path: Path) -> None:
        self._container = _open_input(path)

    def get_track_format(self, index: int) -> MediaFormat:
        stream = self._require_container().streams[index]
        ctx = stream.codec_context
        extras: dict[str, Any] = {
            "stream": stream,
            "codec_name": ctx.name,
            "extradata": bytes(ctx.extradata or b""),
        }
        if stream.type == "video":
            rate = stream.average_rate
            return MediaFormat(
                mime_for("video", ctx.name),
                width=ctx.width,
                height=ctx.height,
                frame_rate=float(rate) if rate else None,
                bit_rate=ctx.bit_rate or None,
                extras=extras,
            )
        if stream.type == "audio":
            return MediaFormat(
                mime_for("audio", ctx.name),
                bit_rate=ctx.bit_rate or None,
                sample_rate=ctx.sample_rate,
                channels=len(ctx.layout.channels),
                extras=extras,
            )
        return MediaFormat(f"{stream.type}/{ctx.name}", extras=extras)

    def select_track(self, index: int) -> None:
        container = self._require_container()
        self._packets = container.demux(container.streams[index])
        self._next_packet()

    def read_sample_data(self, buffer: bytearray, offset: int = 0) -> int:
        packet = self._current
        if packet is None:
            return -1
        data = bytes(packet)
        size = len(data)
        if size > len(buffer) - offset:
            raise BufferError(
                f"sample of {size} bytes does not fit in {len(buffer) - offset} bytes"
            )
        buffer[offset : offset + size] = data
        return size

    def advance(self) -> bool:
        self._next_packet()
        return self._current is not None

    def release(self) -> None:
        self._current = None
        self._packets = None
        if self._container is not None:
            self._container.close()
            self._container = None

    def _next_packet(self) -> None:
        # demux() ends each stream with an empty flush packet
        packet = next(self._packets, None) if self._packets is not None else None
        if packet is not None and packet.size == 0:
            packet = None
        self._current = packet

    def _require_container(self) -> av.container.InputContainer:
        if self._container is None:
            raise RuntimeError("demuxer has no data source")
        return self._container


# =============================================================================
# Codecs
# =============================================================================


class PyAVDecoder:
    """Software decoder with a single input slot.

    Decoded frames are queued internally and handed out one at a time; a
    released frame is published to the FrameSurface when rendered.
    """

    def __init__(self, mime: str) -> None:
        self.mime = mime
        self._ctx: av.CodecContext | None = None
        self._surface: FrameSurface | None = None
        self._slot: bytearray = bytearray()
        self._slot_borrowed = False
        self._frames: deque[av.VideoFrame | None] = deque()
        self._borrowed: dict[int, av.VideoFrame | None] = {}
        self._next_index = 0

    def configure(self, fmt: MediaFormat, surface: FrameSurface) -> None:
        name = fmt.extras.get("codec_name") or codec_name_for(fmt.mime)
        ctx = av.CodecContext.create(name, "r")
        extradata = fmt.extras.get("extradata")
        if extradata:
            ctx.extradata = extradata
        if fmt.width and fmt.height:
            ctx.width = fmt.width
            ctx.height = fmt.height
        self._ctx = ctx
        self._surface = surface
        pixels = (fmt.width or 0) * (fmt.height or 0)
        self._slot = bytearray(max(pixels * 3 // 2, _MIN_DECODER_SLOT))
        logger.debug("Decoder %s configured for %s", name, fmt.mime)

    def start(self) -> None:
        self._require_ctx().open()

    def dequeue_input_buffer(self, timeout_us: int) -> SampleBuffer | None:
        if self._slot_borrowed:
            return None
        self._slot_borrowed = True
        return SampleBuffer(0, self._slot)

    def queue_input_buffer(self, buffer: SampleBuffer) -> None:
        self._slot_borrowed = False
        ctx = self._require_ctx()
        if buffer.info.is_end_of_stream:
            self._frames.extend(ctx.decode(None))
            self._frames.append(None)
            return

        packet = av.Packet(buffer.data())
        packet.pts = buffer.info.presentation_time_us
        packet.time_base = MICROSECONDS
        self._frames.extend(ctx.decode(packet))

    def dequeue_output_buffer(self, timeout_us: int) -> SampleBuffer | None:
        if not self._frames:
            return None
        frame = self._frames.popleft()
        index = self._next_index
        self._next_index += 1
        self._borrowed[index] = frame
        if frame is None:
            info = BufferInfo(flags=BufferFlag.END_OF_STREAM)
        else:
            info = BufferInfo(
                presentation_time_us=to_microseconds(frame.pts, frame.time_base) or 0
            )
        return SampleBuffer(index, b"", info)

    def release_output_buffer(self, buffer: SampleBuffer, render: bool) -> None:
        frame = self._borrowed.pop(buffer.index, None)
        if render and frame is not None and self._surface is not None:
            self._surface.publish(frame)

    def stop(self) -> None:
        self._frames.clear()
        self._borrowed.clear()

    def release(self) -> None:
        self._ctx = None

    def _require_ctx(self) -> av.CodecContext:
        if self._ctx is None:
            raise RuntimeError("decoder is not configured")
        return self._ctx


class PyAVEncoder:
    """Software video encoder fed from a FrameSurface.

    Frames are scaled to the configured size and converted to yuv420p.
    The output format is announced once, before the first sample.
    """

    def __init__(self, mime: str) -> None:
        self.mime = mime
        self._ctx: av.CodecContext | None = None
        self._format: MediaFormat | None = None
        self._output_format: MediaFormat | None = None
        self._surface: FrameSurface | None = None
        self._pending: deque[tuple[bytes, BufferInfo]] = deque()
        self._format_announced = False
        self._flushed = False
        self._frames_encoded = 0
        self._next_index = 0

    @property
    def output_format(self) -> MediaFormat | None:
        return self._output_format

    def configure(self, fmt: MediaFormat) -> None:
        encoder_name = _ENCODERS.get(fmt.mime)
        if encoder_name is None:
            raise ValueError(f"no encoder for {fmt.mime}")
        if not fmt.width or not fmt.height or not fmt.frame_rate:
            raise ValueError("encoder format needs width, height and frame_rate")

        rate = Fraction(fmt.frame_rate).limit_denominator(1001)
        ctx = av.CodecContext.create(encoder_name, "w")
        ctx.width = fmt.width
        ctx.height = fmt.height
        ctx.pix_fmt = "yuv420p"
        ctx.time_base = MICROSECONDS
        ctx.framerate = rate
        if fmt.bit_rate:
            ctx.bit_rate = fmt.bit_rate
        interval = fmt.extras.get("key_frame_interval", 1)
        ctx.gop_size = max(1, round(interval * fmt.frame_rate))
        ctx.max_b_frames = 0
        ctx.options = _encoder_options(fmt)
        self._ctx = ctx
        self._format = fmt
        logger.debug(
            "Encoder %s configured: %dx%d @ %s fps, %s bps, gop %d",
            encoder_name,
            fmt.width,
            fmt.height,
            rate,
            fmt.bit_rate,
            ctx.gop_size,
        )

    def create_input_surface(self) -> FrameSurface:
        self._surface = FrameSurface()
        return self._surface

    def start(self) -> None:
        self._require_ctx().open()

    def signal_end_of_input_stream(self) -> None:
        if self._surface is not None:
            self._surface.signal_end_of_stream()

    def poll_output(self, timeout_us: int) -> EncoderPoll:
        ctx = self._require_ctx()
        surface = self._surface
        if surface is None:
            raise RuntimeError("encoder has no input surface")

        if not self._pending:
            frame = surface.take()
            if frame is not None:
                self._queue_packets(ctx.encode(self._prepare(frame)))
            elif surface.drained and not self._flushed:
                self._flushed = True
                self._queue_packets(ctx.encode(None))
                self._pending.append((b"", BufferInfo(flags=BufferFlag.END_OF_STREAM)))

        if not self._pending:
            return Empty()

        if not self._format_announced:
            self._format_announced = True
            self._output_format = self._describe_output(ctx)
            return FormatReady(self._output_format)

        payload, info = self._pending.popleft()
        index = self._next_index
        self._next_index += 1
        return Sample(SampleBuffer(index, payload, info))

    def release_output_buffer(self, buffer: SampleBuffer) -> None:
        pass

    def stop(self) -> None:
        self._pending.clear()

    def release(self) -> None:
        self._ctx = None

    def _prepare(self, frame: av.VideoFrame) -> av.VideoFrame:
        assert self._format is not None
        pts_us = to_microseconds(frame.pts, frame.time_base)
        if pts_us is None:
            pts_us = int(self._frames_encoded * 1_000_000 / self._format.frame_rate)
        out = frame.reformat(
            width=self._format.width, height=self._format.height, format="yuv420p"
        )
        out.pts = pts_us
        out.time_base = MICROSECONDS
        self._frames_encoded += 1
        return out

    def _queue_packets(self, packets: list[av.Packet]) -> None:
        for packet in packets:
            payload = bytes(packet)
            pts = to_microseconds(packet.pts, packet.time_base or MICROSECONDS) or 0
            flags = BufferFlag.KEY_FRAME if packet.is_keyframe else BufferFlag.NONE
            self._pending.append((payload, BufferInfo(len(payload), pts, flags)))

    def _describe_output(self, ctx: av.CodecContext) -> MediaFormat:
        assert self._format is not None
        fmt = self._format
        return MediaFormat(
            fmt.mime,
            width=fmt.width,
            height=fmt.height,
            frame_rate=fmt.frame_rate,
            bit_rate=fmt.bit_rate,
            extras={
                **fmt.extras,
                "encoder_name": ctx.name,
                "extradata": bytes(ctx.extradata or b""),
            },
        )

    def _require_ctx(self) -> av.CodecContext:
        if self._ctx is None:
            raise RuntimeError("encoder is not configured")
        return self._ctx


def _encoder_options(fmt: MediaFormat) -> dict[str, str]:
    options = {}
    for key in ("profile", "level"):
        value = fmt.extras.get(key)
        if value:
            options[key] = str(value)
    return options


# =============================================================================
# Muxer
# =============================================================================


class PyAVMuxer:
    """Writes pre-encoded packets into an output container."""

    def __init__(self, path: Path, container_format: str) -> None:
        self.path = path
        # FFmpeg defers opening the file until the header is written
        if not path.parent.is_dir():
            raise OSError(f"cannot create {path}: {path.parent} is not a directory")
        try:
            self._container = av.open(str(path), "w", format=container_format)
        except FFmpegError as e:
            raise OSError(f"cannot create {path}: {e}") from e
        self._streams: list[Any] = []
        self._orientation = 0
        self._started = False
        self._closed = False

    def set_orientation_hint(self, degrees: int) -> None:
        self._orientation = degrees

    def add_track(self, fmt: MediaFormat) -> int:
        if self._started:
            raise RuntimeError("cannot add a track after the muxer started")
        if fmt.is_video:
            stream = self._add_video_stream(fmt)
        else:
            template = fmt.extras.get("stream")
            if template is None:
                raise ValueError(f"no source stream to copy for {fmt.mime}")
            stream = self._container.add_stream_from_template(template)
        self._streams.append(stream)
        return len(self._streams) - 1

    def start(self) -> None:
        self._container.start_encoding()
        self._started = True

    def write_sample_data(
        self, track_index: int, payload: bytes | memoryview, info: BufferInfo
    ) -> None:
        if not self._started:
            raise RuntimeError("muxer not started")
        packet = av.Packet(bytes(payload))
        packet.pts = info.presentation_time_us
        packet.dts = info.presentation_time_us
        packet.time_base = MICROSECONDS
        packet.is_keyframe = info.is_key_frame
        packet.stream = self._streams[track_index]
        self._container.mux(packet)

    def stop(self) -> None:
        if not self._started:
            raise RuntimeError("muxer not started")
        self._close()

    def release(self) -> None:
        # An unstarted container is closed without writing a trailer
        self._close()

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self._container.close()

    def _add_video_stream(self, fmt: MediaFormat) -> Any:
        rate = Fraction(fmt.frame_rate or 30).limit_denominator(1001)
        stream = self._container.add_stream(
            fmt.extras.get("encoder_name", "libx264"), rate=rate
        )
        ctx = stream.codec_context
        ctx.width = fmt.width
        ctx.height = fmt.height
        ctx.pix_fmt = "yuv420p"
        if fmt.bit_rate:
            ctx.bit_rate = fmt.bit_rate
        ctx.options = _encoder_options(fmt)
        if self._orientation:
            stream.set_display_rotation(self._orientation)
        return stream


# =============================================================================
# Backend
# =============================================================================


class PyAVBackend:
    """Creates PyAV-backed collaborators for a transcode run."""

    def create_metadata_reader(self) -> PyAVMetadataReader:
        return PyAVMetadataReader()

    def create_demuxer(self) -> PyAVDemuxer:
        return PyAVDemuxer()

    def create_decoder(self, mime: str) -> PyAVDecoder:
        return PyAVDecoder(mime)

    def create_encoder(self, mime: str) -> PyAVEncoder:
        return PyAVEncoder(mime)

    def create_muxer(self, path: Path, container_format: str) -> PyAVMuxer:
        return PyAVMuxer(path, container_format)
