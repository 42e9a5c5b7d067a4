"""vidshrink - shrink videos by re-encoding them at a lower bitrate."""

__version__ = "0.1.0"
