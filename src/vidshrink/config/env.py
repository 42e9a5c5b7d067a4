"""Environment variable reader with dependency injection support.

EnvReader reads ``VIDSHRINK_*`` variables with type conversion. Tests pass an
explicit mapping instead of touching os.environ.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

ENV_PREFIX = "VIDSHRINK_"

_T = TypeVar("_T")


class EnvReader:
    """Environment variable reader with type conversion and validation.

    Names passed to the getters are relative to ``prefix``, so
    ``reader.get_int("DECODER_TIMEOUT_US")`` reads
    ``VIDSHRINK_DECODER_TIMEOUT_US``.

    Example:
        reader = EnvReader(env={"VIDSHRINK_FRAME_RATE": "30"})
        reader.get_float("FRAME_RATE")  # 30.0
    """

    def __init__(
        self, env: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> None:
        """Initialize the environment reader.

        Args:
            env: Optional mapping to use instead of os.environ.
            prefix: Prefix prepended to every variable name.
        """
        self._env: Mapping[str, str] = env if env is not None else os.environ
        self._prefix = prefix

    def name(self, var: str) -> str:
        """Return the full environment variable name for ``var``."""
        return f"{self._prefix}{var}"

    def is_set(self, var: str) -> bool:
        return self.name(var) in self._env

    def get_str(self, var: str, default: str | None = None) -> str | None:
        return self._env.get(self.name(var), default)

    def _get_converted(
        self, var: str, convert: Callable[[str], _T], kind: str, default: _T | None
    ) -> _T | None:
        value = self._env.get(self.name(var))
        if value is None:
            return default
        try:
            return convert(value)
        except ValueError:
            logger.warning("Invalid %s value for %s: %s", kind, self.name(var), value)
            return default

    def get_int(self, var: str, default: int | None = None) -> int | None:
        """Get an integer, falling back to ``default`` if unset or invalid."""
        return self._get_converted(var, int, "integer", default)

    def get_float(self, var: str, default: float | None = None) -> float | None:
        """Get a float, falling back to ``default`` if unset or invalid."""
        return self._get_converted(var, float, "float", default)

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        """Get a boolean.

        "true", "1", "yes" and "on" (case-insensitive) are true; any other
        value is false.
        """
        value = self._env.get(self.name(var))
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def get_path(
        self, var: str, must_exist: bool = False, default: Path | None = None
    ) -> Path | None:
        """Get a path with tilde expansion.

        Args:
            var: Variable name without prefix.
            must_exist: If True, a path that does not exist is logged and
                ``default`` is returned instead.
            default: Value returned when unset.
        """
        value = self._env.get(self.name(var))
        if value is None:
            return default

        path = Path(value).expanduser()
        if must_exist and not path.exists():
            logger.warning(
                "Environment variable %s points to non-existent path: %s",
                self.name(var),
                value,
            )
            return default
        return path
