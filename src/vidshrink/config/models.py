"""Configuration data models.

This module defines dataclasses for vidshrink configuration options.
"""

from dataclasses import dataclass, field
from pathlib import Path

MIB = 1024 * 1024


@dataclass(frozen=True)
class CompressionConfig:
    """Tunable constants of the compression pipeline.

    The defaults describe a 24 fps baseline AVC stream at 20% of the
    (resolution-scaled) source bitrate.
    """

    output_frame_rate: float | None = 24.0
    """Encoder frame rate. None uses the source frame rate instead."""

    key_frame_interval_seconds: int = 2
    """Seconds between forced key frames."""

    video_mime: str = "video/avc"
    """Output video codec."""

    profile: str = "baseline"
    """Encoder profile."""

    level: str = "3"
    """Encoder level."""

    estimate_factor: float = 0.1
    """Bits per pixel per frame used when the source bitrate is unknown."""

    compression_ratio: float = 0.2
    """Fraction of the scaled base bitrate used as the target."""

    min_bitrate: int = 500_000
    """Lower clamp of the target bitrate (bits/s)."""

    max_bitrate: int = 10_000_000
    """Upper clamp of the target bitrate (bits/s)."""

    source_bitrate_ceiling: int = 100_000_000
    """Source bitrates at or above this value are treated as bogus."""

    audio_buffer_size: int = MIB
    """Capacity of the audio passthrough scratch buffer (bytes)."""

    decoder_timeout_us: int = 10_000
    """Bounded wait for decoder input/output slots."""

    encoder_timeout_us: int = 0
    """Wait for encoder output; 0 polls without blocking."""

    default_frame_rate: float = 30.0
    """Frame rate assumed when the source does not report one."""

    container_format: str = "mp4"
    """Output container format."""

    output_prefix: str = "compressed_"
    output_extension: str = ".mp4"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.output_frame_rate is not None and self.output_frame_rate <= 0:
            raise ValueError(
                f"output_frame_rate must be positive, got {self.output_frame_rate}"
            )
        if self.key_frame_interval_seconds < 0:
            raise ValueError(
                "key_frame_interval_seconds must be >= 0, "
                f"got {self.key_frame_interval_seconds}"
            )
        if not self.video_mime.startswith("video/"):
            raise ValueError(f"video_mime must be a video type, got {self.video_mime}")
        if self.min_bitrate <= 0 or self.max_bitrate < self.min_bitrate:
            raise ValueError(
                "bitrate clamp must satisfy 0 < min_bitrate <= max_bitrate, "
                f"got [{self.min_bitrate}, {self.max_bitrate}]"
            )
        if not 0 < self.compression_ratio <= 1:
            raise ValueError(
                f"compression_ratio must be in (0, 1], got {self.compression_ratio}"
            )
        if self.estimate_factor <= 0:
            raise ValueError(
                f"estimate_factor must be positive, got {self.estimate_factor}"
            )
        if self.audio_buffer_size <= 0:
            raise ValueError(
                f"audio_buffer_size must be positive, got {self.audio_buffer_size}"
            )
        if self.decoder_timeout_us < 0 or self.encoder_timeout_us < 0:
            raise ValueError("codec timeouts must be >= 0")
        if self.default_frame_rate <= 0:
            raise ValueError(
                f"default_frame_rate must be positive, got {self.default_frame_rate}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class OutputConfig:
    """Where compressed files and staged inputs are written."""

    # Directory for compressed output files
    directory: Path = field(
        default_factory=lambda: Path.home() / "Videos" / "vidshrink"
    )

    # Directory for staged input copies (None = system temp dir)
    staging_directory: Path | None = None


@dataclass
class VidshrinkConfig:
    """Main configuration container for vidshrink.

    Aggregates all configuration sections.
    """

    compression: CompressionConfig = field(default_factory=CompressionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
