"""Tests for FFmpeg process orchestration.

**Feature: action-encode, Property 6: Exit Code Mapping**
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from hypothesis import given, settings, strategies as st

from action_encode.modules.transcoding.exceptions import DownloadError, EncodeError, SpawnError
from action_encode.modules.transcoding.ffmpeg import (
    EncodeInvocation,
    FFmpegTranscoder,
    encoded_output_path,
)
from action_encode.modules.transcoding.models import EncodeStatus, Job
from action_encode.modules.transcoding.params import build_params
from action_encode.modules.transcoding.schemas import EncodeSettings


BINARY = "/opt/ffmpeg/ffmpeg-b6.0"
SPAWN_TARGET = "action_encode.modules.transcoding.ffmpeg.asyncio.create_subprocess_exec"

STDERR_OUTPUT = (
    b"  Duration: 00:02:00.00, start: 0.000000, bitrate: 1205 kb/s\n"
    b"frame=  750 fps=250 q=28.0 size=  1024kB time=00:00:30.00 bitrate=1398.1kbits/s speed=10x\r"
    b"frame= 1500 fps=250 q=28.0 size=  2048kB time=00:01:00.00 bitrate=1398.1kbits/s speed=10x\r"
    b"frame= 3000 fps=250 q=28.0 size=  4096kB time=00:02:00.00 bitrate=1398.1kbits/s speed=10x\n"
)


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process with canned output."""

    def __init__(self, returncode: int = 0, stderr: bytes = b"", stdout: bytes = b""):
        self.returncode = returncode
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self.stderr.feed_eof()
        self.stdout = asyncio.StreamReader()
        self.stdout.feed_data(stdout)
        self.stdout.feed_eof()

    async def wait(self) -> int:
        return self.returncode


class HangingProcess:
    """Stand-in for an encoder that keeps its pipes open until killed."""

    def __init__(self, stderr: bytes):
        self.returncode = None
        self.killed = False
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(stderr)
        self.stdout = asyncio.StreamReader()

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9
        self.stderr.feed_eof()
        self.stdout.feed_eof()

    async def wait(self) -> int:
        while self.returncode is None:
            await asyncio.sleep(0)
        return self.returncode


def make_resolver(binary: str = BINARY) -> MagicMock:
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=binary)
    return resolver


def make_job() -> Job:
    return Job(uid="job-7", workpath="/work/job-7", assets=[])


def make_settings(debug: bool = False) -> EncodeSettings:
    return EncodeSettings(
        workpath="/work/job-7",
        logger=logging.getLogger("tests.ffmpeg"),
        debug=debug,
    )


class TestOutputPath:
    """Tests for output path derivation."""

    @given(
        stem=st.text(min_size=1, max_size=30, alphabet=st.characters(whitelist_categories=("L", "N"))),
        extension=st.sampled_from([".mov", ".avi", ".mkv", ".mp4"]),
    )
    @settings(max_examples=100)
    def test_extension_replaced_with_encoded_suffix(self, stem: str, extension: str) -> None:
        """**Feature: action-encode, Property 6: Exit Code Mapping**

        For any 4-character extension, the output SHALL be the input with its
        last 4 characters replaced by -encoded.mp4.
        """
        assert encoded_output_path(f"{stem}{extension}") == f"{stem}-encoded.mp4"


class TestFFmpegTranscoder:
    """Tests for spawning and supervising the encoder."""

    @pytest.mark.asyncio
    async def test_exit_code_zero_resolves_output(self) -> None:
        """**Feature: action-encode, Property 6: Exit Code Mapping**"""
        transcoder = FFmpegTranscoder(resolver=make_resolver())

        with patch(SPAWN_TARGET, new=AsyncMock(return_value=FakeProcess(0))):
            output = await transcoder.transcode(make_job(), make_settings(), "footage/clip.mov")

        assert output == "footage/clip-encoded.mp4"

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_encode_error(self) -> None:
        """**Feature: action-encode, Property 6: Exit Code Mapping**"""
        transcoder = FFmpegTranscoder(resolver=make_resolver())

        with patch(SPAWN_TARGET, new=AsyncMock(return_value=FakeProcess(1, stderr=b"Invalid data\n"))):
            with pytest.raises(EncodeError, match="code : 1") as exc_info:
                await transcoder.transcode(make_job(), make_settings(), "clip.mov")

        assert exc_info.value.exit_code == 1

    @pytest.mark.asyncio
    async def test_spawn_failure_raises_spawn_error(self) -> None:
        transcoder = FFmpegTranscoder(resolver=make_resolver())
        spawn = AsyncMock(side_effect=FileNotFoundError(2, "No such file or directory"))

        with patch(SPAWN_TARGET, new=spawn):
            with pytest.raises(SpawnError) as exc_info:
                await transcoder.transcode(make_job(), make_settings(), "clip.mov")

        assert isinstance(exc_info.value.cause, FileNotFoundError)

    @pytest.mark.asyncio
    async def test_download_failure_propagates_without_spawning(self) -> None:
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=DownloadError("https://example.com/ffmpeg"))
        spawn = AsyncMock()

        with patch(SPAWN_TARGET, new=spawn):
            with pytest.raises(DownloadError):
                await FFmpegTranscoder(resolver=resolver).transcode(
                    make_job(), make_settings(), "clip.mov"
                )

        spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_arguments_are_passed_as_separate_tokens(self) -> None:
        job = make_job()
        run_settings = make_settings()
        spawn = AsyncMock(return_value=FakeProcess(0))

        with patch(SPAWN_TARGET, new=spawn):
            await FFmpegTranscoder(resolver=make_resolver()).transcode(job, run_settings, "clip.mov")

        args = spawn.call_args.args
        assert args[0] == BINARY
        assert list(args[1:]) == build_params(job, run_settings, "clip.mov", "clip-encoded.mp4")
        assert "shell" not in spawn.call_args.kwargs

    @pytest.mark.asyncio
    async def test_diagnostic_stream_drives_progress(self) -> None:
        emitted: list[int] = []
        process = FakeProcess(0, stderr=STDERR_OUTPUT)

        with patch(SPAWN_TARGET, new=AsyncMock(return_value=process)):
            await FFmpegTranscoder(resolver=make_resolver()).transcode(
                make_job(), make_settings(), "clip.mov", on_progress=emitted.append
            )

        assert emitted == [25, 50, 100]

    @pytest.mark.asyncio
    async def test_stdout_echoed_only_in_debug(self, caplog) -> None:
        with caplog.at_level(logging.INFO, logger="tests.ffmpeg"):
            with patch(SPAWN_TARGET, new=AsyncMock(return_value=FakeProcess(0, stdout=b"hello"))):
                await FFmpegTranscoder(resolver=make_resolver()).transcode(
                    make_job(), make_settings(debug=False), "clip.mov"
                )
            assert "[job-7] hello" not in caplog.messages

            with patch(SPAWN_TARGET, new=AsyncMock(return_value=FakeProcess(0, stdout=b"hello"))):
                await FFmpegTranscoder(resolver=make_resolver()).transcode(
                    make_job(), make_settings(debug=True), "clip.mov"
                )
            assert "[job-7] hello" in caplog.messages
            assert any(m.startswith("[job-7] spawning ffmpeg process: ") for m in caplog.messages)

    @pytest.mark.asyncio
    async def test_stream_error_kills_encoder(self) -> None:
        process = HangingProcess(STDERR_OUTPUT)

        def reject(percentage: int) -> None:
            raise ValueError(f"rejected {percentage}")

        with patch(SPAWN_TARGET, new=AsyncMock(return_value=process)):
            with pytest.raises(ValueError, match="rejected 25"):
                await asyncio.wait_for(
                    FFmpegTranscoder(resolver=make_resolver()).transcode(
                        make_job(), make_settings(), "clip.mov", on_progress=reject
                    ),
                    timeout=5,
                )

        assert process.killed
        assert process.returncode == -9


class TestEncodeInvocation:
    """Tests for the invocation state machine."""

    def test_successful_lifecycle(self) -> None:
        invocation = EncodeInvocation("clip.mov", "clip-encoded.mp4")

        invocation.transition(EncodeStatus.RESOLVING)
        invocation.transition(EncodeStatus.SPAWNED)
        invocation.transition(EncodeStatus.SUCCEEDED)

        assert invocation.is_terminal

    def test_resolution_can_fail(self) -> None:
        invocation = EncodeInvocation("clip.mov", "clip-encoded.mp4")

        invocation.transition(EncodeStatus.RESOLVING)
        invocation.transition(EncodeStatus.FAILED)

        assert invocation.is_terminal

    @pytest.mark.parametrize("terminal", [EncodeStatus.SUCCEEDED, EncodeStatus.FAILED])
    def test_terminal_states_accept_no_transitions(self, terminal: EncodeStatus) -> None:
        invocation = EncodeInvocation("clip.mov", "clip-encoded.mp4")
        invocation.transition(EncodeStatus.RESOLVING)
        invocation.transition(EncodeStatus.SPAWNED)
        invocation.transition(terminal)

        with pytest.raises(RuntimeError):
            invocation.transition(EncodeStatus.RESOLVING)

    def test_cannot_spawn_before_resolving(self) -> None:
        invocation = EncodeInvocation("clip.mov", "clip-encoded.mp4")

        with pytest.raises(RuntimeError):
            invocation.transition(EncodeStatus.SPAWNED)
