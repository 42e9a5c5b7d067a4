"""Muxer gate.

The container writer may only start once the encoder has announced its
output format and the video track has been registered. The audio track can
be registered earlier because its format is known from the source. No
sample of either kind is written before the writer starts.
"""

from __future__ import annotations

import logging

from vidshrink.compressor.errors import CompressionError, ErrorKind
from vidshrink.compressor.interfaces import Muxer
from vidshrink.compressor.types import (
    UNASSIGNED_TRACK,
    BufferInfo,
    MediaFormat,
    PipelineState,
)

logger = logging.getLogger(__name__)


class MuxerGateError(CompressionError):
    """The muxer was driven out of order."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.UNEXPECTED_FAILURE, message)


class MuxerGate:
    """Orders track registration, start and sample writes on a Muxer.

    Track indices and the started flag are recorded on the PipelineState;
    once assigned a track index never changes.
    """

    def __init__(self, muxer: Muxer, state: PipelineState) -> None:
        self._muxer = muxer
        self._state = state

    @property
    def started(self) -> bool:
        return self._state.muxer_started

    def register_audio(self, fmt: MediaFormat) -> int:
        """Register the passthrough audio track. Allowed only before start."""
        if self._state.audio_track != UNASSIGNED_TRACK:
            raise MuxerGateError("audio track already registered")
        if self._state.muxer_started:
            raise MuxerGateError("cannot add audio track after muxer start")
        self._state.audio_track = self._muxer.add_track(fmt)
        logger.debug("Registered audio output track %d", self._state.audio_track)
        return self._state.audio_track

    def register_video_and_start(self, fmt: MediaFormat) -> None:
        """Register the encoder's video track, then start the writer."""
        if self._state.muxer_started:
            raise MuxerGateError("muxer already started")
        self._state.video_track = self._muxer.add_track(fmt)
        self._muxer.start()
        self._state.muxer_started = True
        logger.debug(
            "Muxer started: video track %d, audio track %d",
            self._state.video_track,
            self._state.audio_track,
        )

    def write_video(self, payload: bytes | memoryview, info: BufferInfo) -> None:
        self._write(self._state.video_track, "video", payload, info)

    def write_audio(self, payload: bytes | memoryview, info: BufferInfo) -> None:
        self._write(self._state.audio_track, "audio", payload, info)

    def _write(
        self, track: int, kind: str, payload: bytes | memoryview, info: BufferInfo
    ) -> None:
        if not self._state.muxer_started:
            raise MuxerGateError(f"{kind} sample written before muxer start")
        if track == UNASSIGNED_TRACK:
            raise MuxerGateError(f"{kind} sample written without a registered track")
        self._muxer.write_sample_data(track, payload, info)
