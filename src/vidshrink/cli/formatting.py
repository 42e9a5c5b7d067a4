"""Formatting helpers for CLI output."""

from __future__ import annotations

from typing import Any

from vidshrink.compressor.pipeline import EncodeSettings
from vidshrink.compressor.tracks import TrackSelection
from vidshrink.compressor.types import VideoInfo


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Returns:
        Formatted string (e.g., "4.2 GB", "128.0 MB", "1.5 KB").
    """
    if size_bytes >= 1024**3:
        return f"{size_bytes / (1024**3):.1f} GB"
    elif size_bytes >= 1024**2:
        return f"{size_bytes / (1024**2):.1f} MB"
    elif size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes} B"


def format_bitrate(bits_per_second: int) -> str:
    """Format a bitrate ("1.6 Mbps", "800 kbps", "unknown" for 0)."""
    if bits_per_second <= 0:
        return "unknown"
    if bits_per_second >= 1_000_000:
        return f"{bits_per_second / 1_000_000:.1f} Mbps"
    return f"{bits_per_second // 1000} kbps"


def format_size_change(size_before: int, size_after: int) -> str:
    """Describe a size change, e.g. "12.0 MB -> 3.0 MB (-75%)"."""
    summary = f"{format_file_size(size_before)} -> {format_file_size(size_after)}"
    if size_before <= 0:
        return summary
    percent = (size_after - size_before) / size_before * 100
    return f"{summary} ({percent:+.0f}%)"


def probe_to_dict(
    info: VideoInfo, tracks: TrackSelection, settings: EncodeSettings
) -> dict[str, Any]:
    """Build the JSON representation of a probe result."""
    return {
        "source": {
            "width": info.width,
            "height": info.height,
            "duration_us": info.duration_us,
            "frame_rate": info.frame_rate,
            "bitrate": info.bitrate,
            "rotation": info.rotation,
            "total_frames": info.total_frames,
        },
        "tracks": {
            "video": {"index": tracks.video.index, "mime": tracks.video.format.mime},
            "audio": (
                {"index": tracks.audio.index, "mime": tracks.audio.format.mime}
                if tracks.audio is not None
                else None
            ),
        },
        "target": {
            "width": settings.width,
            "height": settings.height,
            "bitrate": settings.bitrate,
            "frame_rate": settings.frame_rate,
        },
    }


def format_probe_human(
    info: VideoInfo, tracks: TrackSelection, settings: EncodeSettings
) -> str:
    """Render a probe result as aligned text lines."""
    audio = (
        f"#{tracks.audio.index} ({tracks.audio.format.mime})"
        if tracks.audio is not None
        else "none"
    )
    lines = [
        f"Resolution:  {info.width}x{info.height}",
        f"Duration:    {info.duration_seconds:.2f}s (~{info.total_frames} frames)",
        f"Frame rate:  {info.frame_rate:.3f} fps",
        f"Bitrate:     {format_bitrate(info.bitrate)}",
        f"Rotation:    {info.rotation}",
        f"Video track: #{tracks.video.index} ({tracks.video.format.mime})",
        f"Audio track: {audio}",
        "",
        "Target:",
        f"  Resolution: {settings.width}x{settings.height}",
        f"  Bitrate:    {format_bitrate(settings.bitrate)}",
        f"  Frame rate: {settings.frame_rate:.3f} fps",
    ]
    return "\n".join(lines)
