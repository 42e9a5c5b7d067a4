"""Data types shared by the compression pipeline.

Timestamps and durations are always expressed in microseconds.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

# Sentinel for an output track index that has not been assigned yet
UNASSIGNED_TRACK = -1


@dataclass(frozen=True)
class VideoInfo:
    """Immutable snapshot of the source video characteristics."""

    width: int
    """Frame width in pixels (may be odd)."""

    height: int
    """Frame height in pixels (may be odd)."""

    duration_us: int
    """Container duration in microseconds."""

    frame_rate: float = 30.0
    """Frames per second; 30.0 when the source does not report one."""

    bitrate: int = 0
    """Bits per second; 0 when unknown."""

    rotation: int = 0
    """Display rotation in degrees, one of 0, 90, 180, 270."""

    @property
    def duration_seconds(self) -> float:
        """Duration in seconds."""
        return self.duration_us / 1_000_000

    @property
    def total_frames(self) -> int:
        """Estimated frame count used as the progress denominator."""
        return int(self.duration_seconds * self.frame_rate)

    @property
    def is_valid(self) -> bool:
        """True if the critical fields are all non-zero."""
        return self.width != 0 and self.height != 0 and self.duration_us != 0


class TrackRole(enum.Enum):
    """Role of a selected track."""

    VIDEO = "video"
    AUDIO = "audio"


@dataclass(frozen=True)
class MediaFormat:
    """Codec identifier plus codec-specific parameters of a stream.

    ``mime`` follows the ``<kind>/<codec>`` convention ("video/avc",
    "audio/aac"). Backends may stash their own objects in ``extras``.
    """

    mime: str
    width: int | None = None
    height: int | None = None
    frame_rate: float | None = None
    bit_rate: int | None = None
    sample_rate: int | None = None
    channels: int | None = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_video(self) -> bool:
        return self.mime.startswith("video/")

    @property
    def is_audio(self) -> bool:
        return self.mime.startswith("audio/")

    @property
    def codec(self) -> str:
        """Codec part of the mime type ("avc" for "video/avc")."""
        return self.mime.partition("/")[2]


@dataclass(frozen=True)
class TrackDescriptor:
    """A track selected from the source container."""

    index: int
    format: MediaFormat
    role: TrackRole


class BufferFlag(enum.IntFlag):
    """Flags attached to a sample buffer."""

    NONE = 0
    KEY_FRAME = 1
    CODEC_CONFIG = 2
    END_OF_STREAM = 4
    PARTIAL_FRAME = 8


@dataclass
class BufferInfo:
    """Metadata describing the valid region of a sample buffer."""

    size: int = 0
    presentation_time_us: int = 0
    flags: BufferFlag = BufferFlag.NONE
    offset: int = 0

    @property
    def is_end_of_stream(self) -> bool:
        return bool(self.flags & BufferFlag.END_OF_STREAM)

    @property
    def is_codec_config(self) -> bool:
        return bool(self.flags & BufferFlag.CODEC_CONFIG)

    @property
    def is_key_frame(self) -> bool:
        return bool(self.flags & BufferFlag.KEY_FRAME)


@dataclass
class SampleBuffer:
    """A codec-owned buffer borrowed for a single pipeline iteration.

    ``index`` identifies the slot inside the owning codec; the buffer must be
    handed back to that codec before the next iteration touches its queue.
    """

    index: int
    payload: bytearray | memoryview | bytes
    info: BufferInfo = field(default_factory=BufferInfo)

    def data(self) -> bytes:
        """Return the valid bytes of the payload."""
        start = self.info.offset
        return bytes(self.payload[start : start + self.info.size])


@dataclass
class PipelineState:
    """Coordinator-local mutable state for one transcode run."""

    total_frames: int
    input_exhausted: bool = False
    decoder_finished: bool = False
    encoder_finished: bool = False
    audio_finished: bool = False
    muxer_started: bool = False
    video_track: int = UNASSIGNED_TRACK
    audio_track: int = UNASSIGNED_TRACK
    frame_count: int = 0
    last_progress: float = 0.0

    @property
    def finished(self) -> bool:
        """True once both the video and audio paths are done."""
        return self.encoder_finished and self.audio_finished
