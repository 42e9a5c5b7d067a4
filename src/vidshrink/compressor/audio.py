"""Audio passthrough: compressed audio samples are copied unmodified."""

from __future__ import annotations

import logging

from vidshrink.compressor.interfaces import Demuxer
from vidshrink.compressor.muxer import MuxerGate
from vidshrink.compressor.types import BufferInfo, PipelineState

logger = logging.getLogger(__name__)


class AudioPassthrough:
    """Moves one audio sample per iteration from the demuxer to the muxer.

    Samples are read into a reusable scratch buffer whose capacity is the
    upper bound on the size of a single audio sample.
    """

    def __init__(
        self,
        demuxer: Demuxer | None,
        gate: MuxerGate,
        state: PipelineState,
        buffer_size: int,
    ) -> None:
        self._demuxer = demuxer
        self._gate = gate
        self._state = state
        self._buffer = bytearray(buffer_size)
        self.samples_copied = 0

    @property
    def enabled(self) -> bool:
        return self._demuxer is not None

    def step(self) -> None:
        state = self._state
        if self._demuxer is None or state.audio_finished or not state.muxer_started:
            return

        size = self._demuxer.read_sample_data(self._buffer, 0)
        if size < 0:
            state.audio_finished = True
            logger.debug(
                "Audio passthrough finished after %d samples", self.samples_copied
            )
            return

        info = BufferInfo(
            size=size,
            presentation_time_us=self._demuxer.sample_time_us,
            flags=self._demuxer.sample_flags,
        )
        self._gate.write_audio(memoryview(self._buffer)[:size], info)
        self.samples_copied += 1
        self._demuxer.advance()
