"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. Overrides passed to get_config() (CLI arguments)
2. Environment variables (VIDSHRINK_*)
3. Config file (~/.vidshrink/config.toml)
4. Default values

Environment variables:
- VIDSHRINK_CONFIG_PATH: Path to config file (overrides default location)
- VIDSHRINK_OUTPUT_DIR: Directory for compressed files
- VIDSHRINK_STAGING_DIR: Directory for staged input copies
- VIDSHRINK_OUTPUT_FRAME_RATE: Encoder frame rate ("source" = match input)
- VIDSHRINK_KEY_FRAME_INTERVAL: Seconds between key frames
- VIDSHRINK_COMPRESSION_RATIO: Fraction of the base bitrate to target
- VIDSHRINK_MIN_BITRATE / VIDSHRINK_MAX_BITRATE: Target bitrate clamp
- VIDSHRINK_DECODER_TIMEOUT_US: Bounded wait for decoder slots
- VIDSHRINK_LOG_LEVEL / VIDSHRINK_LOG_FILE / VIDSHRINK_LOG_FORMAT: Logging
"""

from __future__ import annotations

import dataclasses
import logging
import tomllib
from pathlib import Path
from typing import Any

from vidshrink.config.env import EnvReader
from vidshrink.config.models import (
    CompressionConfig,
    LoggingConfig,
    OutputConfig,
    VidshrinkConfig,
)

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".vidshrink"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

# Environment variable -> (CompressionConfig field, type)
_COMPRESSION_ENV: dict[str, tuple[str, type]] = {
    "KEY_FRAME_INTERVAL": ("key_frame_interval_seconds", int),
    "COMPRESSION_RATIO": ("compression_ratio", float),
    "MIN_BITRATE": ("min_bitrate", int),
    "MAX_BITRATE": ("max_bitrate", int),
    "AUDIO_BUFFER_SIZE": ("audio_buffer_size", int),
    "DECODER_TIMEOUT_US": ("decoder_timeout_us", int),
}


def get_default_config_path(env: EnvReader | None = None) -> Path:
    """Get the default config file path.

    Can be overridden by the VIDSHRINK_CONFIG_PATH environment variable.
    """
    env = env or EnvReader()
    return env.get_path("CONFIG_PATH", default=DEFAULT_CONFIG_FILE)


def load_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        path: Path to config file. If None, uses default location.

    Returns:
        Parsed configuration dict. Empty dict if the file doesn't exist or
        cannot be parsed.
    """
    if path is None:
        path = get_default_config_path()

    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    try:
        with path.open("rb") as f:
            config = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("Failed to load config file %s: %s", path, e)
        return {}

    logger.debug("Loaded config from %s", path)
    return config


def _known_fields(cls: type, section: dict[str, Any], section_name: str) -> dict:
    """Filter a config file section down to the dataclass fields of ``cls``."""
    names = {f.name for f in dataclasses.fields(cls)}
    known = {k: v for k, v in section.items() if k in names}
    for key in section.keys() - names:
        logger.warning("Ignoring unknown config key [%s] %s", section_name, key)
    return known


def _build_compression(section: dict[str, Any], env: EnvReader) -> CompressionConfig:
    values = _known_fields(CompressionConfig, section, "compression")

    # TOML has no null, so "source" selects the source frame rate
    if values.get("output_frame_rate") == "source":
        values["output_frame_rate"] = None

    frame_rate = env.get_str("OUTPUT_FRAME_RATE")
    if frame_rate is not None:
        if frame_rate.lower() == "source":
            values["output_frame_rate"] = None
        else:
            parsed = env.get_float("OUTPUT_FRAME_RATE")
            if parsed is not None:
                values["output_frame_rate"] = parsed

    for var, (name, kind) in _COMPRESSION_ENV.items():
        getter = env.get_int if kind is int else env.get_float
        value = getter(var)
        if value is not None:
            values[name] = value

    return CompressionConfig(**values)


def _build_logging(section: dict[str, Any], env: EnvReader) -> LoggingConfig:
    values = _known_fields(LoggingConfig, section, "logging")
    if values.get("file"):
        values["file"] = Path(values["file"]).expanduser()

    level = env.get_str("LOG_LEVEL")
    if level:
        values["level"] = level
    log_format = env.get_str("LOG_FORMAT")
    if log_format:
        values["format"] = log_format
    log_file = env.get_path("LOG_FILE")
    if log_file is not None:
        values["file"] = log_file

    return LoggingConfig(**values)


def _build_output(section: dict[str, Any], env: EnvReader) -> OutputConfig:
    values = _known_fields(OutputConfig, section, "output")
    for key in ("directory", "staging_directory"):
        if values.get(key):
            values[key] = Path(values[key]).expanduser()

    output_dir = env.get_path("OUTPUT_DIR")
    if output_dir is not None:
        values["directory"] = output_dir
    staging_dir = env.get_path("STAGING_DIR")
    if staging_dir is not None:
        values["staging_directory"] = staging_dir

    return OutputConfig(**values)


def get_config(
    config_path: Path | None = None,
    env: EnvReader | None = None,
    # CLI overrides (highest precedence)
    output_dir: Path | None = None,
    output_frame_rate: float | None = None,
    match_source_frame_rate: bool = False,
) -> VidshrinkConfig:
    """Get vidshrink configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides VIDSHRINK_CONFIG_PATH).
        env: Environment reader (defaults to os.environ).
        output_dir: CLI override for the output directory.
        output_frame_rate: CLI override for the encoder frame rate.
        match_source_frame_rate: CLI flag to encode at the source frame rate.

    Returns:
        VidshrinkConfig with merged configuration.

    Raises:
        ValueError: If a merged value fails validation.
    """
    env = env or EnvReader()
    file_config = load_config_file(config_path or get_default_config_path(env))

    compression = _build_compression(file_config.get("compression", {}), env)
    if match_source_frame_rate:
        compression = dataclasses.replace(compression, output_frame_rate=None)
    elif output_frame_rate is not None:
        compression = dataclasses.replace(
            compression, output_frame_rate=output_frame_rate
        )

    output = _build_output(file_config.get("output", {}), env)
    if output_dir is not None:
        output.directory = output_dir

    return VidshrinkConfig(
        compression=compression,
        logging=_build_logging(file_config.get("logging", {}), env),
        output=output,
    )
