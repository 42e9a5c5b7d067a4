"""Job context for structured logging.

A transcode runs on a worker thread. The job context travels with it through
contextvars so every record emitted during the run is tagged with the job.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)
_source_path: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "source_path", default=None
)


def get_job_context() -> tuple[str | None, str | None]:
    """Return (job_id, source_path) for the current context."""
    return _job_id.get(), _source_path.get()


@contextmanager
def job_context(
    job_id: str, source_path: Path | str | None = None
) -> Generator[None, None, None]:
    """Tag log records emitted inside the block with ``job_id``.

    Example:
        with job_context("1718000000000", "/tmp/in.mp4"):
            logger.info("Starting")  # -> "[J1718000000000] Starting"
    """
    job_token = _job_id.set(job_id)
    path_token = _source_path.set(str(source_path) if source_path is not None else None)
    try:
        yield
    finally:
        _source_path.reset(path_token)
        _job_id.reset(job_token)


class JobContextFilter(logging.Filter):
    """Logging filter that injects the job context into log records.

    Adds ``job_id`` and ``source_path`` attributes for JSON output and a
    compact ``job_tag`` ("[J<id>] " or empty) for text output.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        job_id, source_path = get_job_context()
        record.job_id = job_id
        record.source_path = source_path
        record.job_tag = f"[J{job_id}] " if job_id else ""
        return True  # Never filter out records
