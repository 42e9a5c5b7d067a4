"""Source metadata probing.

Pure parsing helpers turn the raw metadata strings into a VideoInfo. Missing
or malformed fields fall back to documented defaults:

- width, height, duration: 0
- frame rate: 30.0 (CompressionConfig.default_frame_rate)
- bitrate: 0
- rotation: 0
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from vidshrink.compressor.errors import InvalidInputError
from vidshrink.compressor.interfaces import MediaBackend, MetadataKey, MetadataReader
from vidshrink.compressor.types import VideoInfo

logger = logging.getLogger(__name__)

VALID_ROTATIONS = (0, 90, 180, 270)


def parse_int(value: str | None, default: int = 0) -> int:
    """Parse an integer field, returning ``default`` if missing or invalid.

    Floating point strings ("1920.0") are accepted and truncated.
    """
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        return default


def parse_float(value: str | None, default: float) -> float:
    """Parse a float field, accepting rationals like "30000/1001"."""
    if value is None:
        return default
    numerator, sep, denominator = value.partition("/")
    try:
        if sep:
            den = float(denominator)
            return float(numerator) / den if den else default
        result = float(value)
    except ValueError:
        return default
    # nan and inf are as useless as a missing value
    if result != result or result in (float("inf"), float("-inf")):
        return default
    return result


def normalize_rotation(degrees: int) -> int:
    """Map a rotation to one of 0/90/180/270, or 0 if not a right angle."""
    normalized = degrees % 360
    if normalized not in VALID_ROTATIONS:
        logger.warning("Ignoring non right-angle rotation: %d", degrees)
        return 0
    return normalized


def build_video_info(
    reader: MetadataReader, default_frame_rate: float = 30.0
) -> VideoInfo:
    """Read every VideoInfo field from an opened metadata reader."""
    frame_rate = parse_float(
        reader.extract_metadata(MetadataKey.FRAME_RATE), default_frame_rate
    )
    if frame_rate <= 0:
        frame_rate = default_frame_rate
    return VideoInfo(
        width=parse_int(reader.extract_metadata(MetadataKey.WIDTH)),
        height=parse_int(reader.extract_metadata(MetadataKey.HEIGHT)),
        duration_us=parse_int(reader.extract_metadata(MetadataKey.DURATION_US)),
        frame_rate=frame_rate,
        bitrate=parse_int(reader.extract_metadata(MetadataKey.BITRATE)),
        rotation=normalize_rotation(
            parse_int(reader.extract_metadata(MetadataKey.ROTATION))
        ),
    )


def check_source_accessible(path: Path) -> None:
    """Raise InvalidInputError unless ``path`` is a readable file."""
    if not path.is_file() or not os.access(path, os.R_OK):
        raise InvalidInputError("Input video file is not accessible")


def probe_video_info(
    backend: MediaBackend, path: Path, default_frame_rate: float = 30.0
) -> VideoInfo:
    """Extract a VideoInfo from the file at ``path``.

    The metadata reader is always released, even if opening the source
    fails.

    Raises:
        InvalidInputError: If the file cannot be read or width, height or
            duration is zero.
    """
    reader = backend.create_metadata_reader()
    try:
        try:
            reader.set_data_source(path)
        except OSError as e:
            raise InvalidInputError(f"Cannot read source metadata: {e}") from e
        info = build_video_info(reader, default_frame_rate)
    finally:
        reader.release()

    logger.debug(
        "Probed %s: %dx%d, %.3fs, %.3f fps, %d bps, rotation=%d",
        path,
        info.width,
        info.height,
        info.duration_seconds,
        info.frame_rate,
        info.bitrate,
        info.rotation,
    )

    if not info.is_valid:
        raise InvalidInputError("Invalid video file or corrupted metadata")
    return info
