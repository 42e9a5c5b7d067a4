"""Media backends implementing vidshrink.compressor.interfaces.MediaBackend."""

from vidshrink.backends.pyav import PyAVBackend

__all__ = ["PyAVBackend"]
