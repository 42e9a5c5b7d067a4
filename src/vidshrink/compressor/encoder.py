"""Encoder stage: drains compressed video into the muxer.

The encoder is polled without blocking; it produces output as frames arrive
on its input surface. The first FormatReady event opens the muxer gate.
"""

from __future__ import annotations

import logging

from vidshrink.compressor.interfaces import Empty, Encoder, FormatReady, Sample
from vidshrink.compressor.muxer import MuxerGate
from vidshrink.compressor.types import PipelineState

logger = logging.getLogger(__name__)


class EncoderStage:
    """Polls an Encoder once per iteration and routes what it produces."""

    def __init__(
        self,
        encoder: Encoder,
        gate: MuxerGate,
        state: PipelineState,
        timeout_us: int = 0,
    ) -> None:
        self._encoder = encoder
        self._gate = gate
        self._state = state
        self._timeout_us = timeout_us
        self.samples_written = 0
        self.samples_dropped = 0

    def drain_output(self) -> None:
        state = self._state
        if state.encoder_finished:
            return

        result = self._encoder.poll_output(self._timeout_us)

        if isinstance(result, Empty):
            return

        if isinstance(result, FormatReady):
            if state.muxer_started:
                logger.warning(
                    "Ignoring encoder format change after muxer start: %s",
                    result.format.mime,
                )
                return
            self._gate.register_video_and_start(result.format)
            return

        if isinstance(result, Sample):
            self._handle_sample(result)
            return

        raise TypeError(f"Unknown encoder poll result: {result!r}")

    def _handle_sample(self, result: Sample) -> None:
        state = self._state
        buffer = result.buffer
        info = buffer.info
        try:
            if info.is_codec_config:
                logger.debug("Skipping codec config buffer (%d bytes)", info.size)
            elif not state.muxer_started:
                self.samples_dropped += 1
                logger.debug(
                    "Dropping encoder sample at %dus before muxer start",
                    info.presentation_time_us,
                )
            elif info.size > 0:
                self._gate.write_video(buffer.data(), info)
                self.samples_written += 1
        finally:
            self._encoder.release_output_buffer(buffer)

        if info.is_end_of_stream:
            state.encoder_finished = True
            logger.debug("Encoder finished after %d samples", self.samples_written)
