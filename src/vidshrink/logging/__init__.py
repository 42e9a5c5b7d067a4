"""Structured logging module for vidshrink.

Provides configurable logging with JSON format support and file rotation,
plus a job context that tags records emitted during a transcode.
"""

from vidshrink.logging.config import configure_logging
from vidshrink.logging.context import JobContextFilter, get_job_context, job_context
from vidshrink.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "JobContextFilter",
    "configure_logging",
    "get_job_context",
    "job_context",
]
