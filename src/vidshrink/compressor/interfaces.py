"""Interfaces of the media collaborators driven by the pipeline.

The pipeline treats metadata readers, demuxers, codecs and muxers as black
boxes with blocking or non-blocking poll semantics. A MediaBackend creates
them; the production backend lives in vidshrink.backends.pyav and an
in-memory backend for tests lives in vidshrink.compressor.testing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from vidshrink.compressor.surface import FrameSurface
from vidshrink.compressor.types import BufferFlag, BufferInfo, MediaFormat, SampleBuffer


class MetadataKey(enum.Enum):
    """Metadata fields a MetadataReader can report."""

    WIDTH = "width"
    HEIGHT = "height"
    DURATION_US = "duration_us"
    FRAME_RATE = "frame_rate"
    BITRATE = "bitrate"
    ROTATION = "rotation"


# =============================================================================
# Encoder poll result
# =============================================================================


@dataclass(frozen=True)
class Empty:
    """No encoder output is available yet."""


@dataclass(frozen=True)
class FormatReady:
    """The encoder output format is final and known."""

    format: MediaFormat


@dataclass(frozen=True)
class Sample:
    """The encoder produced an output buffer."""

    buffer: SampleBuffer


EncoderPoll = Empty | FormatReady | Sample


# =============================================================================
# Collaborator protocols
# =============================================================================


class MetadataReader(Protocol):
    """Reads container-level metadata as raw strings."""

    def set_data_source(self, path: Path) -> None:
        """Open the file at ``path``.

        Raises:
            OSError: If the file cannot be opened or parsed.
        """
        ...

    def extract_metadata(self, key: MetadataKey) -> str | None:
        """Return the raw value for ``key`` or None if not present."""
        ...

    def release(self) -> None: ...


class Demuxer(Protocol):
    """Yields compressed samples of the selected track in timestamp order."""

    @property
    def track_count(self) -> int: ...

    @property
    def sample_time_us(self) -> int:
        """Presentation time of the current sample, -1 at end of stream."""
        ...

    @property
    def sample_flags(self) -> BufferFlag: ...

    def set_data_source(self, path: Path) -> None: ...

    def get_track_format(self, index: int) -> MediaFormat: ...

    def select_track(self, index: int) -> None: ...

    def read_sample_data(self, buffer: bytearray, offset: int = 0) -> int:
        """Copy the current sample into ``buffer`` starting at ``offset``.

        The buffer is never resized.

        Returns:
            Number of bytes written, or -1 when the stream has ended.

        Raises:
            BufferError: If the sample does not fit in the buffer.
        """
        ...

    def advance(self) -> bool:
        """Move to the next sample. Returns False at end of stream."""
        ...

    def release(self) -> None: ...


class Decoder(Protocol):
    """Converts compressed video samples into frames rendered to a surface."""

    def configure(self, fmt: MediaFormat, surface: FrameSurface) -> None: ...

    def start(self) -> None: ...

    def dequeue_input_buffer(self, timeout_us: int) -> SampleBuffer | None:
        """Borrow a writable input slot, waiting at most ``timeout_us``."""
        ...

    def queue_input_buffer(self, buffer: SampleBuffer) -> None:
        """Submit a filled input slot; ``buffer.info`` describes its content."""
        ...

    def dequeue_output_buffer(self, timeout_us: int) -> SampleBuffer | None:
        """Borrow a decoded output slot, waiting at most ``timeout_us``."""
        ...

    def release_output_buffer(self, buffer: SampleBuffer, render: bool) -> None:
        """Return an output slot, rendering its frame to the surface if asked."""
        ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class Encoder(Protocol):
    """Converts frames taken from its input surface into compressed samples."""

    @property
    def output_format(self) -> MediaFormat | None: ...

    def configure(self, fmt: MediaFormat) -> None: ...

    def create_input_surface(self) -> FrameSurface: ...

    def start(self) -> None: ...

    def poll_output(self, timeout_us: int) -> EncoderPoll: ...

    def release_output_buffer(self, buffer: SampleBuffer) -> None: ...

    def signal_end_of_input_stream(self) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class Muxer(Protocol):
    """Writes tracks of compressed samples into an output container."""

    def set_orientation_hint(self, degrees: int) -> None: ...

    def add_track(self, fmt: MediaFormat) -> int:
        """Register an output track and return its index."""
        ...

    def start(self) -> None: ...

    def write_sample_data(
        self, track_index: int, payload: bytes | memoryview, info: BufferInfo
    ) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class MediaBackend(Protocol):
    """Factory for the collaborators of a single transcode run."""

    def create_metadata_reader(self) -> MetadataReader: ...

    def create_demuxer(self) -> Demuxer: ...

    def create_decoder(self, mime: str) -> Decoder: ...

    def create_encoder(self, mime: str) -> Encoder: ...

    def create_muxer(self, path: Path, container_format: str) -> Muxer: ...
