"""Input staging and output location collaborators.

The compressor never interprets an input locator itself. A stager turns the
locator into a local readable file, an output provider supplies the
directory results are written to, and get_file_size() reports sizes for
display.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

logger = logging.getLogger(__name__)

Locator = str | Path


@dataclass(frozen=True)
class StagedSource:
    """A local copy (or the original file) ready to be read."""

    path: Path
    is_temporary: bool = False

    def cleanup(self) -> None:
        """Delete the staged copy. Failures are logged, never raised."""
        if not self.is_temporary:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove staged input %s: %s", self.path, e)


class SourceStager(Protocol):
    """Resolves an opaque input locator into a local readable file."""

    def stage(self, locator: Locator) -> StagedSource | None:
        """Return the staged source, or None if the locator cannot be read."""
        ...


class OutputLocation(Protocol):
    """Supplies an existing, writable output directory."""

    def get_output_directory(self) -> Path: ...


def resolve_locator(locator: Locator) -> Path | None:
    """Map a plain path or ``file://`` URI to a local path.

    Returns:
        The local path, or None for unsupported URI schemes.
    """
    if isinstance(locator, Path):
        return locator
    parsed = urlparse(locator)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    # Single letters are Windows drive letters, not schemes
    if parsed.scheme and len(parsed.scheme) > 1:
        return None
    return Path(locator)


class LocalFileStager:
    """Copies the input into a scratch directory before it is read.

    The copy is named ``temp_video_<millis><suffix>`` and is deleted by the
    caller through StagedSource.cleanup(). With ``copy_inputs=False`` local
    files are used in place.
    """

    def __init__(
        self, staging_directory: Path | None = None, copy_inputs: bool = True
    ) -> None:
        self.staging_directory = staging_directory
        self.copy_inputs = copy_inputs

    def stage(self, locator: Locator) -> StagedSource | None:
        source = resolve_locator(locator)
        if source is None:
            logger.error("Unsupported input locator: %s", locator)
            return None
        if not self.copy_inputs:
            return StagedSource(source)

        directory = self.staging_directory or Path(tempfile.gettempdir())
        millis = int(time.time() * 1000)
        target = directory / f"temp_video_{millis}{source.suffix or '.mp4'}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
        except OSError:
            logger.error("Error creating temp file from %s", locator, exc_info=True)
            target.unlink(missing_ok=True)
            return None

        logger.debug("Staged %s as %s", locator, target)
        return StagedSource(target, is_temporary=True)


class DirectoryOutputLocation:
    """Writes results into a fixed directory, creating it on demand."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def get_output_directory(self) -> Path:
        """Return the output directory, creating it if needed.

        Raises:
            OSError: If the directory cannot be created.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory


def get_file_size(locator: Locator) -> int:
    """Return the size of the file behind ``locator`` in bytes, or 0."""
    path = resolve_locator(locator)
    if path is None:
        logger.error("Error getting video size: unsupported locator %s", locator)
        return 0
    try:
        return path.stat().st_size
    except OSError:
        logger.error("Error getting video size for %s", locator, exc_info=True)
        return 0
