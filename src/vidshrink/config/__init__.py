"""Configuration management for vidshrink.

Configuration is loaded with precedence handling:
1. CLI flags (highest priority)
2. Environment variables (VIDSHRINK_*)
3. Config file (~/.vidshrink/config.toml)
4. Default values (lowest priority)
"""

from vidshrink.config.env import EnvReader
from vidshrink.config.loader import (
    get_config,
    get_default_config_path,
    load_config_file,
)
from vidshrink.config.logging_factory import (
    build_logging_config,
    configure_logging_from_cli,
)
from vidshrink.config.models import (
    CompressionConfig,
    LoggingConfig,
    OutputConfig,
    VidshrinkConfig,
)

__all__ = [
    # Models
    "CompressionConfig",
    "LoggingConfig",
    "OutputConfig",
    "VidshrinkConfig",
    # Loader
    "EnvReader",
    "get_config",
    "get_default_config_path",
    "load_config_file",
    # Logging
    "build_logging_config",
    "configure_logging_from_cli",
]
