"""Exit codes for vidshrink CLI commands.

Exit code ranges:
    0: Success
    1-9: Compression outcomes
    10-19: Configuration errors
    128+: Terminated by signal
"""

from enum import IntEnum

from vidshrink.compressor.errors import CompressionError, ErrorKind


class ExitCode(IntEnum):
    """Exit codes for vidshrink CLI commands."""

    SUCCESS = 0

    # Compression outcomes (1-9)
    INVALID_INPUT = 1
    COMPRESSION_FAILED = 2

    # Configuration errors (10-19)
    CONFIG_ERROR = 11

    # Ctrl+C / SIGINT
    INTERRUPTED = 130


def exit_code_for(error: CompressionError) -> ExitCode:
    """Map a CompressionError to the process exit code."""
    if error.kind is ErrorKind.INVALID_INPUT:
        return ExitCode.INVALID_INPUT
    if error.kind is ErrorKind.CANCELLED:
        return ExitCode.INTERRUPTED
    return ExitCode.COMPRESSION_FAILED
