"""Frame hand-off surface between the decoder and the encoder.

The surface holds at most one decoded frame. The decoder publishes into it
when it releases an output buffer for rendering; the encoder takes frames out
on its own schedule. End of input is signalled on the surface itself so the
encoder knows no further frames will arrive.
"""

from __future__ import annotations

import logging
from typing import Any

from vidshrink.compressor.errors import CodecError

logger = logging.getLogger(__name__)


class FrameSurface:
    """Single-slot producer/consumer channel of opaque frame tokens."""

    def __init__(self, name: str = "encoder-input") -> None:
        self.name = name
        self._frame: Any | None = None
        self._end_of_stream = False
        self._released = False
        self.frames_published = 0

    @property
    def can_accept(self) -> bool:
        """True if the producer may publish a frame right now."""
        return self._frame is None and not self._end_of_stream and not self._released

    @property
    def has_frame(self) -> bool:
        return self._frame is not None

    @property
    def end_of_stream(self) -> bool:
        """True once the producer has signalled that no more frames follow."""
        return self._end_of_stream

    @property
    def drained(self) -> bool:
        """True when end of stream was signalled and the slot is empty."""
        return self._end_of_stream and self._frame is None

    @property
    def released(self) -> bool:
        return self._released

    def publish(self, frame: Any) -> None:
        """Place a frame in the slot.

        Raises:
            CodecError: If the slot is occupied, the stream has ended, or
                the surface was released.
        """
        if self._released:
            raise CodecError("surface", "publish", "surface already released")
        if self._end_of_stream:
            raise CodecError("surface", "publish", "end of stream already signalled")
        if self._frame is not None:
            raise CodecError("surface", "publish", "previous frame not consumed")
        self._frame = frame
        self.frames_published += 1

    def take(self) -> Any | None:
        """Remove and return the pending frame, or None if the slot is empty."""
        frame, self._frame = self._frame, None
        return frame

    def signal_end_of_stream(self) -> None:
        self._end_of_stream = True

    def release(self) -> None:
        """Drop any pending frame and refuse further publishing."""
        if self._frame is not None:
            logger.debug("Surface %s released with an unconsumed frame", self.name)
        self._frame = None
        self._released = True
