"""Cooperative cancellation for a running transcode."""

from __future__ import annotations

import threading

from vidshrink.compressor.errors import TranscodeCancelledError


class CancellationToken:
    """Thread-safe flag checked by the pipeline once per iteration."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranscodeCancelledError()
