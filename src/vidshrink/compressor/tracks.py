"""Selection of the video and audio tracks to transcode."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from vidshrink.compressor.errors import InvalidInputError
from vidshrink.compressor.interfaces import Demuxer, MediaBackend
from vidshrink.compressor.types import TrackDescriptor, TrackRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackSelection:
    """The first video track and, if present, the first audio track."""

    video: TrackDescriptor
    audio: TrackDescriptor | None = None

    @property
    def has_audio(self) -> bool:
        return self.audio is not None


def select_tracks(demuxer: Demuxer) -> TrackSelection:
    """Scan the container once and pick the first video and audio tracks.

    Later tracks of an already selected kind are ignored.

    Raises:
        InvalidInputError: If the container has no video track.
    """
    video: TrackDescriptor | None = None
    audio: TrackDescriptor | None = None

    for index in range(demuxer.track_count):
        fmt = demuxer.get_track_format(index)
        if fmt.is_video and video is None:
            video = TrackDescriptor(index=index, format=fmt, role=TrackRole.VIDEO)
        elif fmt.is_audio and audio is None:
            audio = TrackDescriptor(index=index, format=fmt, role=TrackRole.AUDIO)
        else:
            logger.debug("Ignoring track %d (%s)", index, fmt.mime)

    if video is None:
        raise InvalidInputError("No video track found in input file")

    logger.debug(
        "Selected video track %d (%s), audio track %s",
        video.index,
        video.format.mime,
        f"{audio.index} ({audio.format.mime})" if audio else "none",
    )
    return TrackSelection(video=video, audio=audio)


def probe_tracks(backend: MediaBackend, path: Path) -> TrackSelection:
    """Open ``path`` with a throwaway demuxer and select its tracks.

    Raises:
        InvalidInputError: If the file cannot be demuxed or has no video.
    """
    demuxer = backend.create_demuxer()
    try:
        try:
            demuxer.set_data_source(path)
        except OSError as e:
            raise InvalidInputError(f"Cannot open source: {e}") from e
        return select_tracks(demuxer)
    finally:
        demuxer.release()
