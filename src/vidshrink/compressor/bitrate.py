"""Target dimensions and bitrate for the re-encoded video.

The bitrate formula is a heuristic, not a rate-control model:

1. base = source bitrate if 0 < source < ceiling, else
   target_pixels * frame_rate * estimate_factor
2. scale = target_pixels / source_pixels
3. target = base * scale * compression_ratio, clamped to
   [min_bitrate, max_bitrate]
"""

from __future__ import annotations

from vidshrink.config.models import CompressionConfig

_DEFAULTS = CompressionConfig()


def even_floor(value: int) -> int:
    """Round down to the nearest even number."""
    return value if value % 2 == 0 else value - 1


def normalize_dimensions(width: int, height: int) -> tuple[int, int]:
    """Return encoder dimensions with odd values rounded down to even.

    Hardware encoders commonly require even sizes for 4:2:0 chroma.
    """
    return even_floor(width), even_floor(height)


def calculate_target_bitrate(
    source_width: int,
    source_height: int,
    source_bitrate: int,
    frame_rate: float,
    target_width: int,
    target_height: int,
    config: CompressionConfig = _DEFAULTS,
) -> int:
    """Derive the target encode bitrate in bits per second.

    Returns:
        Bitrate within [config.min_bitrate, config.max_bitrate].
    """
    source_pixels = source_width * source_height
    target_pixels = target_width * target_height

    if 0 < source_bitrate < config.source_bitrate_ceiling:
        base_bitrate = float(source_bitrate)
    else:
        base_bitrate = float(int(target_pixels * frame_rate * config.estimate_factor))

    scale_factor = target_pixels / source_pixels if source_pixels > 0 else 1.0
    target = int(base_bitrate * scale_factor * config.compression_ratio)
    return max(config.min_bitrate, min(config.max_bitrate, target))
