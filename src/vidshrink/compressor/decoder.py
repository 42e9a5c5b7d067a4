"""Decoder stage: feeds compressed video in and renders frames to the encoder.

Each pipeline iteration calls feed_input() and then drain_output(). Both
borrow at most one decoder slot and hand it back before returning.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from vidshrink.compressor.errors import ProgressCallbackError
from vidshrink.compressor.interfaces import Decoder, Demuxer, Encoder
from vidshrink.compressor.surface import FrameSurface
from vidshrink.compressor.types import BufferFlag, BufferInfo, PipelineState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class DecoderStage:
    """Drives a Decoder between the video demuxer and the encoder surface."""

    def __init__(
        self,
        decoder: Decoder,
        demuxer: Demuxer,
        encoder: Encoder,
        surface: FrameSurface,
        state: PipelineState,
        timeout_us: int,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._decoder = decoder
        self._demuxer = demuxer
        self._encoder = encoder
        self._surface = surface
        self._state = state
        self._timeout_us = timeout_us
        self._progress_callback = progress_callback

    def feed_input(self) -> None:
        """Copy the next compressed sample into a decoder input slot.

        At the end of the stream an empty end-of-stream buffer is queued
        instead and the input is marked exhausted.
        """
        state = self._state
        if state.input_exhausted:
            return

        slot = self._decoder.dequeue_input_buffer(self._timeout_us)
        if slot is None:
            return

        size = self._demuxer.read_sample_data(slot.payload, 0)
        if size < 0:
            slot.info = BufferInfo(size=0, flags=BufferFlag.END_OF_STREAM)
            self._decoder.queue_input_buffer(slot)
            state.input_exhausted = True
            logger.debug("Decoder input exhausted")
            return

        slot.info = BufferInfo(
            size=size, presentation_time_us=self._demuxer.sample_time_us
        )
        self._decoder.queue_input_buffer(slot)
        self._demuxer.advance()

    def drain_output(self) -> None:
        """Release one decoded buffer toward the encoder surface.

        Nothing is dequeued while the surface still holds an unconsumed frame.
        """
        state = self._state
        if state.decoder_finished or not self._surface.can_accept:
            return

        buffer = self._decoder.dequeue_output_buffer(self._timeout_us)
        if buffer is None:
            return

        self._decoder.release_output_buffer(buffer, render=True)
        state.frame_count += 1
        self._report_progress()

        if buffer.info.is_end_of_stream:
            state.decoder_finished = True
            self._encoder.signal_end_of_input_stream()
            logger.debug("Decoder finished after %d buffers", state.frame_count)

    def _report_progress(self) -> None:
        state = self._state
        if self._progress_callback is None or state.total_frames <= 0:
            return
        fraction = min(1.0, state.frame_count / state.total_frames)
        if fraction < state.last_progress:
            return
        state.last_progress = fraction
        # Callback failures are not codec failures
        try:
            self._progress_callback(fraction)
        except Exception as e:
            raise ProgressCallbackError(str(e) or type(e).__name__) from e
