"""Video compression pipeline.

Re-encodes the first video track of a source file at a reduced bitrate and
copies its first audio track through unchanged. The media collaborators
(demuxers, codecs, muxer) are supplied by a MediaBackend; see
vidshrink.backends.pyav for the production backend.
"""

from vidshrink.compressor.bitrate import calculate_target_bitrate, normalize_dimensions
from vidshrink.compressor.cancellation import CancellationToken
from vidshrink.compressor.compressor import VideoCompressor, build_output_path
from vidshrink.compressor.errors import (
    CodecError,
    CompressionError,
    ErrorKind,
    InvalidInputError,
    OutputMissingError,
    ProgressCallbackError,
    TranscodeCancelledError,
)
from vidshrink.compressor.interfaces import (
    Decoder,
    Demuxer,
    Empty,
    Encoder,
    EncoderPoll,
    FormatReady,
    MediaBackend,
    MetadataKey,
    MetadataReader,
    Muxer,
    Sample,
)
from vidshrink.compressor.pipeline import EncodeSettings, plan_encode, run_pipeline
from vidshrink.compressor.probe import probe_video_info
from vidshrink.compressor.surface import FrameSurface
from vidshrink.compressor.tracks import TrackSelection, probe_tracks, select_tracks
from vidshrink.compressor.types import (
    BufferFlag,
    BufferInfo,
    MediaFormat,
    PipelineState,
    SampleBuffer,
    TrackDescriptor,
    TrackRole,
    VideoInfo,
)

__all__ = [
    # Entry point
    "VideoCompressor",
    "CancellationToken",
    "build_output_path",
    # Errors
    "CodecError",
    "CompressionError",
    "ErrorKind",
    "InvalidInputError",
    "OutputMissingError",
    "ProgressCallbackError",
    "TranscodeCancelledError",
    # Collaborators
    "Decoder",
    "Demuxer",
    "Empty",
    "Encoder",
    "EncoderPoll",
    "FormatReady",
    "FrameSurface",
    "MediaBackend",
    "MetadataKey",
    "MetadataReader",
    "Muxer",
    "Sample",
    # Planning
    "EncodeSettings",
    "TrackSelection",
    "calculate_target_bitrate",
    "normalize_dimensions",
    "plan_encode",
    "probe_tracks",
    "probe_video_info",
    "run_pipeline",
    "select_tracks",
    # Types
    "BufferFlag",
    "BufferInfo",
    "MediaFormat",
    "PipelineState",
    "SampleBuffer",
    "TrackDescriptor",
    "TrackRole",
    "VideoInfo",
]
