"""JSON log formatting for vidshrink.

Records emitted during a transcode are grouped under a ``job`` object so a
log shipper can follow one compression from staging to teardown.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from vidshrink.logging.context import get_job_context

# Attributes every LogRecord carries, plus those added by Formatter.format()
# and JobContextFilter. Anything else on a record came from ``extra=``.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime", "job_id", "source_path", "job_tag"}


def _job_fields(record: logging.LogRecord) -> dict[str, str]:
    """Return the job object for ``record``, empty outside a job.

    Prefers the fields stamped by JobContextFilter, which reflect the context
    the record was emitted in; unfiltered records fall back to the current
    job context.
    """
    if hasattr(record, "job_tag"):
        job_id = getattr(record, "job_id", None)
        source_path = getattr(record, "source_path", None)
    else:
        job_id, source_path = get_job_context()

    job: dict[str, str] = {}
    if job_id:
        job["id"] = job_id
    if source_path:
        job["source"] = source_path
    return job


class JSONFormatter(logging.Formatter):
    """Format log records as one JSON object per line.

    Keys, in order: ``timestamp`` (ISO-8601 UTC), ``level``, ``logger``
    (omitted for root), ``message``, ``job`` (``id`` and ``source``, only
    inside a job), ``extra`` (caller-supplied fields), ``exception`` and
    ``stack`` when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
        }
        if record.name != "root":
            entry["logger"] = record.name
        entry["message"] = record.getMessage()

        job = _job_fields(record)
        if job:
            entry["job"] = job

        extra = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)
