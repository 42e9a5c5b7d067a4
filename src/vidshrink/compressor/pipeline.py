"""Pipeline coordination and resource lifecycle.

run_pipeline() opens every collaborator, drives the decoder, encoder, muxer
and audio passthrough from a single loop, and tears everything down in a
fixed order on every exit path:

1. frame hand-off surface
2. decoder (stop, release)
3. encoder (stop, release)
4. muxer (stop, release)
5. video demuxer, audio demuxer
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType

from vidshrink.compressor.audio import AudioPassthrough
from vidshrink.compressor.bitrate import calculate_target_bitrate, normalize_dimensions
from vidshrink.compressor.cancellation import CancellationToken
from vidshrink.compressor.decoder import DecoderStage, ProgressCallback
from vidshrink.compressor.encoder import EncoderStage
from vidshrink.compressor.errors import InvalidInputError, codec_operation
from vidshrink.compressor.interfaces import (
    Decoder,
    Demuxer,
    Encoder,
    MediaBackend,
    Muxer,
)
from vidshrink.compressor.muxer import MuxerGate
from vidshrink.compressor.surface import FrameSurface
from vidshrink.compressor.tracks import select_tracks
from vidshrink.compressor.types import MediaFormat, PipelineState, VideoInfo
from vidshrink.config.models import CompressionConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Resource lifecycle
# =============================================================================


@dataclass
class ResourceLifecycle:
    """Owns the native resources of one run and releases them in order.

    Attributes are filled in as resources are created, so teardown only
    touches what actually exists. Stop failures are logged and swallowed;
    the resource is released regardless. Release failures are logged and do
    not prevent the remaining resources from being released.
    """

    video_demuxer: Demuxer | None = None
    audio_demuxer: Demuxer | None = None
    surface: FrameSurface | None = None
    decoder: Decoder | None = None
    encoder: Encoder | None = None
    muxer: Muxer | None = None
    closed: bool = field(default=False, init=False)

    def __enter__(self) -> ResourceLifecycle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        if self.surface is not None:
            self._release("surface", self.surface)
        for name, codec in (
            ("decoder", self.decoder),
            ("encoder", self.encoder),
            ("muxer", self.muxer),
        ):
            if codec is not None:
                self._stop(name, codec)
                self._release(name, codec)
        if self.video_demuxer is not None:
            self._release("video demuxer", self.video_demuxer)
        if self.audio_demuxer is not None:
            self._release("audio demuxer", self.audio_demuxer)

    @staticmethod
    def _stop(name: str, resource: Decoder | Encoder | Muxer) -> None:
        try:
            resource.stop()
        except Exception as e:
            logger.warning("%s stop failed: %s", name.capitalize(), e)

    @staticmethod
    def _release(name: str, resource: object) -> None:
        try:
            resource.release()  # type: ignore[attr-defined]
        except Exception:
            logger.error("Error releasing %s", name, exc_info=True)


# =============================================================================
# Coordinator
# =============================================================================


class PipelineCoordinator:
    """Advances every stage once per iteration until video and audio finish.

    Iteration order is fixed: decoder input, decoder output, encoder output,
    audio passthrough. Draining the decoder before polling the encoder lets a
    new frame reach the encoder in the same iteration; polling the encoder
    before audio keeps the muxer-started gate current for the audio write.
    """

    def __init__(
        self,
        decoder_stage: DecoderStage,
        encoder_stage: EncoderStage,
        audio: AudioPassthrough,
        state: PipelineState,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._decoder_stage = decoder_stage
        self._encoder_stage = encoder_stage
        self._audio = audio
        self._state = state
        self._cancel_token = cancel_token
        self.iterations = 0

    def step(self) -> None:
        """Run one iteration of the loop."""
        with codec_operation("decoder", "feed input"):
            self._decoder_stage.feed_input()
        with codec_operation("decoder", "drain output"):
            self._decoder_stage.drain_output()
        with codec_operation("encoder", "drain output"):
            self._encoder_stage.drain_output()
        with codec_operation("audio passthrough", "copy sample"):
            self._audio.step()
        self.iterations += 1

    def run(self) -> PipelineState:
        state = self._state
        while not state.finished:
            if self._cancel_token is not None:
                self._cancel_token.raise_if_cancelled()
            self.step()

        logger.info(
            "Pipeline finished: %d decoded buffers, %d video samples, "
            "%d audio samples in %d iterations",
            state.frame_count,
            self._encoder_stage.samples_written,
            self._audio.samples_copied,
            self.iterations,
        )
        return state


# =============================================================================
# Setup
# =============================================================================


@dataclass(frozen=True)
class EncodeSettings:
    """Encoder parameters derived from the source."""

    width: int
    height: int
    bitrate: int
    frame_rate: float

    def to_format(self, config: CompressionConfig) -> MediaFormat:
        return MediaFormat(
            mime=config.video_mime,
            width=self.width,
            height=self.height,
            frame_rate=self.frame_rate,
            bit_rate=self.bitrate,
            extras={
                "key_frame_interval": config.key_frame_interval_seconds,
                "profile": config.profile,
                "level": config.level,
            },
        )


def plan_encode(info: VideoInfo, config: CompressionConfig) -> EncodeSettings:
    """Compute target dimensions, bitrate and frame rate for ``info``."""
    width, height = normalize_dimensions(info.width, info.height)
    bitrate = calculate_target_bitrate(
        info.width, info.height, info.bitrate, info.frame_rate, width, height, config
    )
    if config.output_frame_rate is None:
        frame_rate = info.frame_rate
        logger.debug("Encoding at source frame rate %.3f", frame_rate)
    else:
        frame_rate = config.output_frame_rate
        logger.debug(
            "Encoding at fixed frame rate %.3f (source %.3f)",
            frame_rate,
            info.frame_rate,
        )
    return EncodeSettings(
        width=width, height=height, bitrate=bitrate, frame_rate=frame_rate
    )


def _open_demuxer(backend: MediaBackend, path: Path, name: str) -> Demuxer:
    demuxer = backend.create_demuxer()
    try:
        demuxer.set_data_source(path)
    except OSError as e:
        demuxer.release()
        raise InvalidInputError(f"Cannot open source for {name}: {e}") from e
    return demuxer


def run_pipeline(
    backend: MediaBackend,
    source_path: Path,
    output_path: Path,
    info: VideoInfo,
    config: CompressionConfig,
    progress_callback: ProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
) -> PipelineState:
    """Transcode ``source_path`` into ``output_path``.

    Returns:
        The final PipelineState.

    Raises:
        InvalidInputError: If the source cannot be demuxed or has no video.
        CodecError: If a codec or muxer operation fails.
        TranscodeCancelledError: If ``cancel_token`` is cancelled.
    """
    with ResourceLifecycle() as resources:
        resources.video_demuxer = _open_demuxer(backend, source_path, "video")
        resources.audio_demuxer = _open_demuxer(backend, source_path, "audio")

        selection = select_tracks(resources.video_demuxer)
        resources.video_demuxer.select_track(selection.video.index)
        if selection.audio is not None:
            resources.audio_demuxer.select_track(selection.audio.index)

        settings = plan_encode(info, config)
        logger.info(
            "Encoding %dx%d -> %dx%d at %d bps, %.3f fps",
            info.width,
            info.height,
            settings.width,
            settings.height,
            settings.bitrate,
            settings.frame_rate,
        )

        with codec_operation("encoder", "configure"):
            resources.encoder = backend.create_encoder(config.video_mime)
            resources.encoder.configure(settings.to_format(config))
            resources.surface = resources.encoder.create_input_surface()

        video_format = selection.video.format
        with codec_operation("decoder", "configure"):
            resources.decoder = backend.create_decoder(video_format.mime)
            resources.decoder.configure(video_format, resources.surface)

        with codec_operation("codec", "start"):
            resources.decoder.start()
            resources.encoder.start()

        state = PipelineState(
            total_frames=info.total_frames,
            audio_finished=selection.audio is None,
        )

        with codec_operation("muxer", "create"):
            resources.muxer = backend.create_muxer(output_path, config.container_format)
            resources.muxer.set_orientation_hint(info.rotation)

        gate = MuxerGate(resources.muxer, state)
        if selection.audio is not None:
            with codec_operation("muxer", "add audio track"):
                gate.register_audio(selection.audio.format)

        coordinator = PipelineCoordinator(
            DecoderStage(
                resources.decoder,
                resources.video_demuxer,
                resources.encoder,
                resources.surface,
                state,
                config.decoder_timeout_us,
                progress_callback,
            ),
            EncoderStage(resources.encoder, gate, state, config.encoder_timeout_us),
            AudioPassthrough(
                resources.audio_demuxer if selection.audio is not None else None,
                gate,
                state,
                config.audio_buffer_size,
            ),
            state,
            cancel_token,
        )
        return coordinator.run()
