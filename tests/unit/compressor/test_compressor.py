"""Tests for the VideoCompressor entry point."""

import asyncio
import threading
from pathlib import Path

import pytest

from vidshrink.compressor.cancellation import CancellationToken
from vidshrink.compressor.compressor import (
    VideoCompressor,
    build_output_path,
    delete_partial_output,
)
from vidshrink.compressor.errors import CompressionError, ErrorKind
from vidshrink.compressor.testing import FakeBackend, InjectedFailure, make_source
from vidshrink.logging import get_job_context
from vidshrink.staging import DirectoryOutputLocation, LocalFileStager


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    return tmp_path / "staging"


def _compressor(
    backend: FakeBackend, output_dir: Path, staging_dir: Path
) -> VideoCompressor:
    return VideoCompressor(
        backend,
        stager=LocalFileStager(staging_dir),
        output=DirectoryOutputLocation(output_dir),
    )


def _outputs(output_dir: Path) -> list[Path]:
    return sorted(output_dir.iterdir()) if output_dir.exists() else []


class TestBuildOutputPath:
    """Tests for build_output_path."""

    def test_name_from_prefix_and_millis(self, tmp_path: Path) -> None:
        path = build_output_path(tmp_path, "compressed_", ".mp4", millis=1234)
        assert path == tmp_path / "compressed_1234.mp4"

    def test_collision_gets_suffix(self, tmp_path: Path) -> None:
        (tmp_path / "compressed_1234.mp4").touch()
        (tmp_path / "compressed_1234_1.mp4").touch()

        path = build_output_path(tmp_path, "compressed_", ".mp4", millis=1234)

        assert path == tmp_path / "compressed_1234_2.mp4"


class TestDeletePartialOutput:
    """Tests for delete_partial_output."""

    def test_deletes_file(self, tmp_path: Path) -> None:
        path = tmp_path / "partial.mp4"
        path.write_bytes(b"x")
        delete_partial_output(path)
        assert not path.exists()

    def test_missing_file_is_ignored(self, tmp_path: Path) -> None:
        delete_partial_output(tmp_path / "missing.mp4")


class TestTranscode:
    """Tests for successful transcodes."""

    @pytest.mark.asyncio
    async def test_returns_compressed_file(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        compressor = _compressor(backend, output_dir, staging_dir)

        result = await compressor.transcode(input_file)

        assert result.parent == output_dir
        assert result.name.startswith("compressed_")
        assert result.suffix == ".mp4"
        assert result.stat().st_size > 0
        assert _outputs(output_dir) == [result]

    @pytest.mark.asyncio
    async def test_reports_progress(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        progress: list[float] = []
        compressor = _compressor(backend, output_dir, staging_dir)

        await compressor.transcode(input_file, progress.append)

        assert progress
        assert progress == sorted(progress)
        assert progress[-1] == 1.0

    @pytest.mark.asyncio
    async def test_staged_copy_removed(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        compressor = _compressor(backend, output_dir, staging_dir)

        await compressor.transcode(input_file)

        assert list(staging_dir.iterdir()) == []
        assert input_file.exists()

    @pytest.mark.asyncio
    async def test_file_uri_locator(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        compressor = _compressor(backend, output_dir, staging_dir)

        result = await compressor.transcode(input_file.as_uri())

        assert result.exists()

    def test_runs_inside_job_context(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        """Records emitted during a run carry the job id."""
        seen: list[tuple[str | None, str | None]] = []
        compressor = _compressor(backend, output_dir, staging_dir)

        compressor.transcode_sync(
            input_file, lambda _: seen.append(get_job_context())
        )

        job_id, source_path = seen[0]
        assert job_id is not None and job_id.isdigit()
        assert source_path == str(input_file)
        assert get_job_context() == (None, None)


class TestFailures:
    """Every failure surfaces as one CompressionError and leaves no output."""

    @pytest.mark.asyncio
    async def test_invalid_metadata(
        self, input_file: Path, output_dir: Path, staging_dir: Path
    ) -> None:
        backend = FakeBackend(make_source(width=0))
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.INVALID_INPUT
        assert "Invalid video file or corrupted metadata" in str(exc_info.value)
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_missing_input_file(
        self, backend: FakeBackend, tmp_path: Path, output_dir: Path
    ) -> None:
        compressor = VideoCompressor(
            backend,
            stager=LocalFileStager(copy_inputs=False),
            output=DirectoryOutputLocation(output_dir),
        )

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(tmp_path / "missing.mp4")

        assert exc_info.value.kind is ErrorKind.INVALID_INPUT
        assert exc_info.value.message == "Input video file is not accessible"

    @pytest.mark.asyncio
    async def test_unstageable_locator(
        self,
        backend: FakeBackend,
        tmp_path: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(tmp_path / "missing.mp4")

        assert exc_info.value.kind is ErrorKind.INVALID_INPUT
        assert exc_info.value.message == "Invalid input locator"

    @pytest.mark.asyncio
    async def test_no_video_track(
        self, input_file: Path, output_dir: Path, staging_dir: Path
    ) -> None:
        source = make_source()
        del source.tracks[0]
        compressor = _compressor(FakeBackend(source), output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.INVALID_INPUT
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_encoder_configure_failure(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        backend.fail_on.add("encoder.configure")
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.COMPRESSION_FAILURE
        assert str(exc_info.value).startswith("Video compression failed: ")
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_partial_output_deleted(
        self, input_file: Path, output_dir: Path, staging_dir: Path
    ) -> None:
        """A failure after samples were written removes the file."""
        source = make_source(audio_samples=None)
        backend = FakeBackend(source)
        compressor = _compressor(backend, output_dir, staging_dir)

        def fail_late(fraction: float) -> None:
            if fraction >= 0.5:
                backend.fail_on.add("muxer.write")

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file, fail_late)

        assert exc_info.value.kind is ErrorKind.COMPRESSION_FAILURE
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_empty_output_is_postcondition_failure(
        self, input_file: Path, output_dir: Path, staging_dir: Path
    ) -> None:
        backend = FakeBackend(make_source(video_frames=0, audio_samples=None))
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.POSTCONDITION_FAILURE
        assert str(exc_info.value) == "Compression failed - output file not created"
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_unexpected_failure(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        """Failures outside codec calls are classified as unexpected."""
        backend.fail_on.add("metadata.create")
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.UNEXPECTED_FAILURE
        assert isinstance(exc_info.value.__cause__, InjectedFailure)

    @pytest.mark.asyncio
    async def test_progress_callback_failure_is_unexpected(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        """A raising progress callback fails the run as unexpected."""
        compressor = _compressor(backend, output_dir, staging_dir)

        def broken(fraction: float) -> None:
            raise ValueError("progress bar closed")

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file, broken)

        assert exc_info.value.kind is ErrorKind.UNEXPECTED_FAILURE
        assert "progress bar closed" in str(exc_info.value)
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_stager_exception_is_wrapped(
        self, backend: FakeBackend, input_file: Path, output_dir: Path
    ) -> None:
        class BrokenStager:
            def stage(self, locator):
                raise RuntimeError("disk on fire")

        compressor = VideoCompressor(
            backend,
            stager=BrokenStager(),
            output=DirectoryOutputLocation(output_dir),
        )

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.UNEXPECTED_FAILURE
        assert "disk on fire" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_output_directory_unavailable(
        self, backend: FakeBackend, input_file: Path, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_bytes(b"")
        compressor = VideoCompressor(
            backend,
            stager=LocalFileStager(copy_inputs=False),
            output=DirectoryOutputLocation(blocker / "out"),
        )

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file)

        assert exc_info.value.kind is ErrorKind.UNEXPECTED_FAILURE


class TestCancellation:
    """Tests for cancelling a transcode."""

    @pytest.mark.asyncio
    async def test_cancelled_token(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        token = CancellationToken()
        token.cancel()
        compressor = _compressor(backend, output_dir, staging_dir)

        with pytest.raises(CompressionError) as exc_info:
            await compressor.transcode(input_file, cancel_token=token)

        assert exc_info.value.kind is ErrorKind.CANCELLED
        assert _outputs(output_dir) == []

    @pytest.mark.asyncio
    async def test_task_cancellation_sets_token(
        self,
        backend: FakeBackend,
        input_file: Path,
        output_dir: Path,
        staging_dir: Path,
    ) -> None:
        """Cancelling the awaiting task cancels the worker."""
        started = threading.Event()
        proceed = threading.Event()
        token = CancellationToken()
        compressor = _compressor(backend, output_dir, staging_dir)

        def block_once(fraction: float) -> None:
            if not started.is_set():
                started.set()
                proceed.wait(timeout=5)

        task = asyncio.create_task(
            compressor.transcode(input_file, block_once, token)
        )
        await asyncio.to_thread(started.wait, 5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        proceed.set()

        assert token.cancelled
