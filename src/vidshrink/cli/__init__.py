"""CLI module for vidshrink."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from vidshrink import __version__
from vidshrink.cli.exit_codes import ExitCode
from vidshrink.compressor.interfaces import MediaBackend
from vidshrink.config import VidshrinkConfig, configure_logging_from_cli, get_config

logger = logging.getLogger(__name__)


def get_backend(ctx: click.Context) -> MediaBackend:
    """Return the media backend for this invocation.

    Tests inject a fake through ``obj={"backend": ...}``; otherwise the
    PyAV backend is created on first use.
    """
    backend = ctx.obj.get("backend")
    if backend is None:
        from vidshrink.backends.pyav import PyAVBackend

        backend = PyAVBackend()
        ctx.obj["backend"] = backend
    return backend


def load_cli_config(ctx: click.Context, **overrides) -> VidshrinkConfig:
    """Load configuration honouring the group-level --config option.

    Exits with CONFIG_ERROR if a configured value fails validation.
    """
    try:
        return get_config(config_path=ctx.obj.get("config_path"), **overrides)
    except ValueError as e:
        click.echo(f"Error: Invalid configuration: {e}", err=True)
        sys.exit(ExitCode.CONFIG_ERROR)


@click.group()
@click.version_option(version=__version__, prog_name="vidshrink")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.vidshrink/config.toml).",
)
@click.pass_context
def main(
    ctx: click.Context,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
    config_path: Path | None,
) -> None:
    """vidshrink - Shrink videos by re-encoding them at a lower bitrate."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    config = load_cli_config(ctx)
    configure_logging_from_cli(
        config.logging,
        level=log_level,
        file=log_file,
        format="json" if log_json else None,
    )
    logger.debug(
        "vidshrink %s starting: config=%s, output_dir=%s",
        __version__,
        config_path or "default",
        config.output.directory,
    )


# Defer import to avoid circular dependency
def _register_commands():
    from vidshrink.cli.compress import compress_command
    from vidshrink.cli.probe import probe_command

    main.add_command(compress_command)
    main.add_command(probe_command)


_register_commands()
