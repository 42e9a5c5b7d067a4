"""CLI compress command for vidshrink."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click

from vidshrink.cli import get_backend, load_cli_config
from vidshrink.cli.exit_codes import ExitCode, exit_code_for
from vidshrink.cli.formatting import format_size_change
from vidshrink.compressor import CancellationToken, CompressionError, VideoCompressor
from vidshrink.staging import DirectoryOutputLocation, LocalFileStager, get_file_size

logger = logging.getLogger(__name__)


@click.command("compress")
@click.argument("file", type=click.Path(path_type=Path))
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the compressed file (default from config).",
)
@click.option(
    "--match-frame-rate",
    is_flag=True,
    help="Encode at the source frame rate instead of the configured rate.",
)
@click.pass_context
def compress_command(
    ctx: click.Context,
    file: Path,
    output_dir: Path | None,
    match_frame_rate: bool,
) -> None:
    """Compress a video file.

    FILE is the video to compress. The compressed copy is written as
    compressed_<millis>.mp4 and its path printed on stdout.
    """
    config = load_cli_config(
        ctx, output_dir=output_dir, match_source_frame_rate=match_frame_rate
    )
    compressor = VideoCompressor(
        get_backend(ctx),
        config.compression,
        stager=LocalFileStager(config.output.staging_directory),
        output=DirectoryOutputLocation(config.output.directory),
    )
    token = CancellationToken()

    with click.progressbar(
        length=100, label=f"Compressing {file.name}", file=sys.stderr
    ) as bar:

        def on_progress(fraction: float) -> None:
            bar.update(int(fraction * 100) - bar.pos)

        try:
            output_path = asyncio.run(compressor.transcode(file, on_progress, token))
        except CompressionError as e:
            click.echo(f"\nError: {e}", err=True)
            sys.exit(exit_code_for(e))
        except KeyboardInterrupt:
            token.cancel()
            click.echo("\nInterrupted.", err=True)
            sys.exit(ExitCode.INTERRUPTED)

    click.echo(
        f"Done: {format_size_change(get_file_size(file), get_file_size(output_path))}",
        err=True,
    )
    click.echo(str(output_path))
