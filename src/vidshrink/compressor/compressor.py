"""Public entry point of the compression pipeline.

VideoCompressor.transcode() stages the input, probes it, runs the pipeline
on a worker thread and returns the path of the compressed file. Any failure
removes the partially written output and surfaces as a single
CompressionError.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from pathlib import Path

from vidshrink.compressor.cancellation import CancellationToken
from vidshrink.compressor.errors import (
    CompressionError,
    ErrorKind,
    InvalidInputError,
    OutputMissingError,
)
from vidshrink.compressor.interfaces import MediaBackend
from vidshrink.compressor.pipeline import run_pipeline
from vidshrink.compressor.probe import check_source_accessible, probe_video_info
from vidshrink.config.models import CompressionConfig
from vidshrink.logging import job_context
from vidshrink.staging import (
    DirectoryOutputLocation,
    LocalFileStager,
    Locator,
    OutputLocation,
    SourceStager,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


def build_output_path(
    directory: Path, prefix: str, extension: str, millis: int | None = None
) -> Path:
    """Return ``<prefix><millis><extension>`` in ``directory``.

    A numeric suffix is appended when the name is already taken.
    """
    if millis is None:
        millis = int(time.time() * 1000)
    candidate = directory / f"{prefix}{millis}{extension}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{prefix}{millis}_{counter}{extension}"
        counter += 1
    return candidate


def delete_partial_output(path: Path) -> None:
    """Best-effort removal of a partially written output file."""
    try:
        if path.exists():
            path.unlink()
            logger.debug("Removed partial output %s", path)
    except OSError as e:
        logger.debug("Could not remove partial output %s: %s", path, e)


class VideoCompressor:
    """Re-encodes video at a reduced bitrate and copies audio through.

    Example:
        compressor = VideoCompressor(PyAVBackend())
        path = await compressor.transcode("/videos/in.mov", print)
    """

    def __init__(
        self,
        backend: MediaBackend,
        config: CompressionConfig | None = None,
        stager: SourceStager | None = None,
        output: OutputLocation | None = None,
    ) -> None:
        """Initialize the compressor.

        Args:
            backend: Factory for demuxers, codecs and muxers.
            config: Pipeline constants (CompressionConfig defaults if None).
            stager: Resolves input locators (default copies to the temp dir).
            output: Output directory provider (default ./compressed).
        """
        self.backend = backend
        self.config = config or CompressionConfig()
        self.stager = stager or LocalFileStager()
        self.output = output or DirectoryOutputLocation(Path.cwd() / "compressed")

    async def transcode(
        self,
        source: Locator,
        progress_callback: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Compress ``source`` without blocking the event loop.

        The pipeline runs on a worker thread; ``progress_callback`` is called
        from that thread with values in [0.0, 1.0]. Cancelling the awaiting
        task cancels the pipeline at its next iteration.

        Raises:
            CompressionError: On any failure; ``kind`` classifies it.
        """
        token = cancel_token or CancellationToken()
        try:
            return await asyncio.to_thread(
                self.transcode_sync, source, progress_callback, token
            )
        except asyncio.CancelledError:
            token.cancel()
            raise

    def transcode_sync(
        self,
        source: Locator,
        progress_callback: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Blocking variant of transcode()."""
        job_id = str(int(time.time() * 1000))
        with job_context(job_id, source):
            try:
                staged = self.stager.stage(source)
            except Exception as e:
                raise CompressionError(
                    ErrorKind.UNEXPECTED_FAILURE, f"Cannot stage input: {e}"
                ) from e
            if staged is None:
                raise InvalidInputError("Invalid input locator")
            try:
                return self._compress(staged.path, progress_callback, cancel_token)
            finally:
                staged.cleanup()

    def _compress(
        self,
        source_path: Path,
        progress_callback: ProgressCallback | None,
        cancel_token: CancellationToken | None,
    ) -> Path:
        try:
            output_dir = self.output.get_output_directory()
        except OSError as e:
            raise CompressionError(
                ErrorKind.UNEXPECTED_FAILURE, f"Cannot create output directory: {e}"
            ) from e
        output_path = build_output_path(
            output_dir, self.config.output_prefix, self.config.output_extension
        )
        started = time.monotonic()
        logger.info("Compressing %s -> %s", source_path, output_path)

        try:
            check_source_accessible(source_path)
            info = probe_video_info(
                self.backend, source_path, self.config.default_frame_rate
            )
            run_pipeline(
                self.backend,
                source_path,
                output_path,
                info,
                self.config,
                progress_callback,
                cancel_token,
            )
            if not output_path.exists() or output_path.stat().st_size == 0:
                raise OutputMissingError()
        except CompressionError as e:
            delete_partial_output(output_path)
            logger.error(
                "Compression of %s failed (%s): %s", source_path, e.kind.value, e
            )
            raise
        except Exception as e:
            delete_partial_output(output_path)
            logger.exception("Unexpected error compressing %s", source_path)
            raise CompressionError(ErrorKind.UNEXPECTED_FAILURE, str(e)) from e
        except BaseException:
            delete_partial_output(output_path)
            raise

        logger.info(
            "Compressed %s in %.1fs (%d bytes)",
            output_path,
            time.monotonic() - started,
            output_path.stat().st_size,
        )
        return output_path
