"""Exceptions raised by the compression pipeline.

Every failure is classified when it is detected. Callers only ever see
CompressionError (or one of its subclasses) and branch on ``kind``.
"""

from __future__ import annotations

import enum
from collections.abc import Generator
from contextlib import contextmanager


class ErrorKind(enum.Enum):
    """Classification of a compression failure."""

    INVALID_INPUT = "invalid_input"
    """Unreadable source, missing video track, or zero critical metadata."""

    COMPRESSION_FAILURE = "compression_failure"
    """A codec or muxer operation failed while the pipeline was running."""

    POSTCONDITION_FAILURE = "postcondition_failure"
    """The pipeline finished but produced no usable output file."""

    UNEXPECTED_FAILURE = "unexpected_failure"
    """Anything not covered by another kind."""

    CANCELLED = "cancelled"
    """The caller cancelled the operation."""


_MESSAGE_PREFIX: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "",
    ErrorKind.COMPRESSION_FAILURE: "Video compression failed: ",
    ErrorKind.POSTCONDITION_FAILURE: "Compression failed - ",
    ErrorKind.UNEXPECTED_FAILURE: "Unexpected error during compression: ",
    ErrorKind.CANCELLED: "Compression cancelled: ",
}


class CompressionError(Exception):
    """Base exception for all compression failures.

    Attributes:
        kind: Classification assigned where the failure was detected.
        message: Short description without the kind prefix.
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{_MESSAGE_PREFIX[kind]}{message}")

    @property
    def is_invalid_input(self) -> bool:
        return self.kind is ErrorKind.INVALID_INPUT


class InvalidInputError(CompressionError):
    """The source cannot be compressed as given."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.INVALID_INPUT, message)


class CodecError(CompressionError):
    """A decoder, encoder, demuxer or muxer call failed."""

    def __init__(self, component: str, operation: str, reason: str) -> None:
        self.component = component
        self.operation = operation
        super().__init__(
            ErrorKind.COMPRESSION_FAILURE, f"{component} {operation} failed: {reason}"
        )


class OutputMissingError(CompressionError):
    """The pipeline completed but the output file is empty or absent."""

    def __init__(self, message: str = "output file not created") -> None:
        super().__init__(ErrorKind.POSTCONDITION_FAILURE, message)


class TranscodeCancelledError(CompressionError):
    """The transcode was cancelled through its cancellation token."""

    def __init__(self, message: str = "cancelled by caller") -> None:
        super().__init__(ErrorKind.CANCELLED, message)


class ProgressCallbackError(CompressionError):
    """The caller's progress callback raised."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            ErrorKind.UNEXPECTED_FAILURE, f"progress callback failed: {reason}"
        )


@contextmanager
def codec_operation(component: str, operation: str) -> Generator[None, None, None]:
    """Classify failures of a collaborator call as compression failures.

    CompressionErrors pass through untouched; any other exception is wrapped
    in a CodecError naming the component and operation.
    """
    try:
        yield
    except CompressionError:
        raise
    except Exception as e:
        raise CodecError(component, operation, str(e) or type(e).__name__) from e
