"""FFmpeg process orchestration.

Runs one encoder invocation: resolves the binary, builds arguments, spawns
the process, feeds its diagnostic stream to the progress tracker and maps the
exit code to a result.
"""

import asyncio
import codecs
import shlex
from typing import Callable, Optional

from action_encode.modules.transcoding.binary import BinaryResolver
from action_encode.modules.transcoding.exceptions import EncodeError, SpawnError
from action_encode.modules.transcoding.models import EncodeStatus, Job
from action_encode.modules.transcoding.params import build_params
from action_encode.modules.transcoding.progress import ProgressTracker
from action_encode.modules.transcoding.schemas import EncodeSettings


OUTPUT_SUFFIX = "-encoded.mp4"
READ_CHUNK_SIZE = 4096


def encoded_output_path(input_path: str) -> str:
    """Derive the output path by replacing the 4-character extension."""
    return input_path[:-4] + OUTPUT_SUFFIX


class EncodeInvocation:
    """State of one encoder invocation.

    NOT_STARTED -> RESOLVING -> SPAWNED -> SUCCEEDED | FAILED, with
    RESOLVING -> FAILED when the binary cannot be resolved or started.
    """

    TRANSITIONS = {
        EncodeStatus.NOT_STARTED: {EncodeStatus.RESOLVING},
        EncodeStatus.RESOLVING: {EncodeStatus.SPAWNED, EncodeStatus.FAILED},
        EncodeStatus.SPAWNED: {EncodeStatus.SUCCEEDED, EncodeStatus.FAILED},
        EncodeStatus.SUCCEEDED: set(),
        EncodeStatus.FAILED: set(),
    }

    def __init__(self, input_path: str, output_path: str):
        self.input_path = input_path
        self.output_path = output_path
        self.status = EncodeStatus.NOT_STARTED
        self.exit_code: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return not self.TRANSITIONS[self.status]

    def transition(self, status: EncodeStatus) -> None:
        if status not in self.TRANSITIONS[self.status]:
            raise RuntimeError(
                f"Invalid encode transition {self.status.value} -> {status.value}"
            )
        self.status = status


class FFmpegTranscoder:
    """Transcodes single assets with FFmpeg.

    Args:
        resolver: Binary resolver (a default BinaryResolver if not provided)
    """

    def __init__(self, resolver: Optional[BinaryResolver] = None):
        self.resolver = resolver or BinaryResolver()

    async def transcode(
        self,
        job: Job,
        settings: EncodeSettings,
        input_path: str,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> str:
        """Transcode one input file.

        Args:
            job: Render job owning the asset
            settings: Run settings
            input_path: Asset path, relative to the job workpath unless absolute
            on_progress: Optional callback receiving progress percentages

        Returns:
            Output file path

        Raises:
            DownloadError: If the binary could not be downloaded
            SpawnError: If the process could not be started
            EncodeError: If the process exited with a non-zero code
        """
        logger = settings.logger
        invocation = EncodeInvocation(input_path, encoded_output_path(input_path))
        output = invocation.output_path

        logger.info(f"[{job.uid}] transcoding asset: {input_path}")

        invocation.transition(EncodeStatus.RESOLVING)
        try:
            params = build_params(job, settings, input_path, output)
            binary = await self.resolver.resolve(settings)

            if settings.debug:
                logger.info(
                    f"[{job.uid}] spawning ffmpeg process: {shlex.join([binary, *params])}"
                )

            try:
                process = await asyncio.create_subprocess_exec(
                    binary,
                    *params,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise SpawnError(e) from e

            invocation.transition(EncodeStatus.SPAWNED)

            tracker = ProgressTracker(job.uid, output, logger, on_progress)
            readers = [
                asyncio.ensure_future(self._read_diagnostics(process.stderr, tracker)),
                asyncio.ensure_future(self._echo_output(process.stdout, job, settings)),
            ]
            try:
                await asyncio.gather(*readers)
            except BaseException:
                for reader in readers:
                    reader.cancel()
                await asyncio.gather(*readers, return_exceptions=True)
                await self._terminate(process, job, settings)
                raise

            invocation.exit_code = await process.wait()

            # On finish (code 0 - success, other - error)
            if invocation.exit_code != 0:
                raise EncodeError(invocation.exit_code)
        except Exception:
            invocation.transition(EncodeStatus.FAILED)
            raise

        invocation.transition(EncodeStatus.SUCCEEDED)
        logger.info(f"[{job.uid}] Completed transcoding, new asset {output}")
        return output

    async def _terminate(
        self,
        process: asyncio.subprocess.Process,
        job: Job,
        settings: EncodeSettings,
    ) -> None:
        if process.returncode is not None:
            return

        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        settings.logger.warning(f"[{job.uid}] ffmpeg process killed after a stream error")

    async def _read_diagnostics(
        self,
        stream: asyncio.StreamReader,
        tracker: ProgressTracker,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            tracker.on_data(decoder.decode(chunk))
        tracker.on_data(decoder.decode(b"", final=True))
        tracker.flush()

    async def _echo_output(
        self,
        stream: asyncio.StreamReader,
        job: Job,
        settings: EncodeSettings,
    ) -> None:
        # Drained even when not echoed so the pipe never fills up
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            if settings.debug:
                settings.logger.info(f"[{job.uid}] {decoder.decode(chunk)}")
