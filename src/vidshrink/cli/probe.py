"""CLI probe command for vidshrink."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from vidshrink.cli import get_backend, load_cli_config
from vidshrink.cli.exit_codes import exit_code_for
from vidshrink.cli.formatting import format_probe_human, probe_to_dict
from vidshrink.compressor import (
    CompressionError,
    plan_encode,
    probe_tracks,
    probe_video_info,
)
from vidshrink.compressor.probe import check_source_accessible


@click.command("probe")
@click.argument("file", type=click.Path(path_type=Path))
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["human", "json"]),
    default="human",
    help="Output format (default: human)",
)
@click.option(
    "--match-frame-rate",
    is_flag=True,
    help="Plan the encode at the source frame rate.",
)
@click.pass_context
def probe_command(
    ctx: click.Context, file: Path, output_format: str, match_frame_rate: bool
) -> None:
    """Show source metadata and the settings compress would use.

    FILE is the path to the video to inspect.
    """
    config = load_cli_config(ctx, match_source_frame_rate=match_frame_rate)
    backend = get_backend(ctx)

    try:
        check_source_accessible(file)
        info = probe_video_info(backend, file, config.compression.default_frame_rate)
        tracks = probe_tracks(backend, file)
    except CompressionError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(exit_code_for(e))

    settings = plan_encode(info, config.compression)
    if output_format == "json":
        click.echo(json.dumps(probe_to_dict(info, tracks, settings), indent=2))
    else:
        click.echo(format_probe_human(info, tracks, settings))
