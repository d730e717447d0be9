"""FFmpeg binary resolution.

Resolution order, first match wins:
1. NEXRENDER_FFMPEG override pointing at an existing file
2. Version-pinned binary cached in the job workpath
3. Download of the pinned static build for this platform
"""

import logging
import os
import platform
import sys
import time
import uuid
from typing import Optional

import httpx

from action_encode.core.logging import log_warning
from action_encode.modules.transcoding.exceptions import DownloadError
from action_encode.modules.transcoding.schemas import EncodeSettings


EXECUTABLE_MODE = 0o755
OVERRIDE_ENV_VAR = "NEXRENDER_FFMPEG"


def binary_filename(version: str, platform_name: Optional[str] = None) -> str:
    """Get the cache file name for a pinned ffmpeg version."""
    platform_name = platform_name or sys.platform
    suffix = ".exe" if platform_name == "win32" else ""
    return f"ffmpeg-{version}{suffix}"


def cache_path(settings: EncodeSettings) -> str:
    """Get the absolute cache path of the pinned binary inside the workpath."""
    return os.path.abspath(
        os.path.join(settings.workpath, binary_filename(settings.ffmpeg_version))
    )


def platform_arch(machine: Optional[str] = None) -> str:
    """Map the host machine type to the release asset architecture."""
    machine = (machine if machine is not None else platform.machine()).lower()
    if machine in ("arm64", "aarch64"):
        return "arm64"
    return "x64"


def download_url(
    settings: EncodeSettings,
    platform_name: Optional[str] = None,
    machine: Optional[str] = None,
) -> str:
    """Build the release URL of the pinned static build for a platform."""
    platform_name = platform_name or sys.platform
    base = settings.releases_url.rstrip("/")
    return f"{base}/{settings.ffmpeg_version}/{platform_name}-{platform_arch(machine)}"


def format_bytes(num_bytes: float) -> str:
    """Format a byte count for progress lines."""
    if num_bytes < 1024:
        return f"{int(num_bytes)} B"
    for unit in ("KB", "MB", "GB"):
        num_bytes /= 1024
        if num_bytes < 1024 or unit == "GB":
            break
    return f"{num_bytes:.1f} {unit}"


def format_eta(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--"
    seconds = int(round(seconds))
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


class DownloadProgress:
    """Throttled download progress reporting.

    Reports percentage, bytes done/total, transfer rate and estimated time
    remaining at most once per interval, plus a final report on finish().
    """

    def __init__(
        self,
        total: Optional[int],
        logger: logging.Logger,
        interval: float = 0.5,
        clock=time.monotonic,
    ):
        self.total = total
        self.logger = logger
        self.interval = interval
        self.clock = clock
        self.done = 0
        self.started_at = clock()
        self._last_report: Optional[float] = None

    @property
    def rate(self) -> float:
        elapsed = self.clock() - self.started_at
        if elapsed <= 0:
            return 0.0
        return self.done / elapsed

    @property
    def eta(self) -> Optional[float]:
        rate = self.rate
        if not self.total or rate <= 0:
            return None
        return max(self.total - self.done, 0) / rate

    @property
    def percentage(self) -> Optional[int]:
        if not self.total:
            return None
        return min(int(self.done * 100 / self.total), 100)

    def format_line(self) -> str:
        percentage = "?" if self.percentage is None else str(self.percentage)
        total = format_bytes(self.total) if self.total else "?"
        return (
            f"{percentage}% - {format_bytes(self.done)}/{total} - "
            f"{format_bytes(self.rate)}/s - {format_eta(self.eta)}"
        )

    def update(self, done: int) -> bool:
        """Record bytes downloaded so far.

        Returns:
            True if a progress line was reported
        """
        self.done = done
        now = self.clock()
        if self._last_report is not None and now - self._last_report < self.interval:
            return False
        self._last_report = now
        self.logger.info(self.format_line(), extra={"overwrite": True})
        return True

    def finish(self) -> None:
        self.logger.info(self.format_line())


class BinaryResolver:
    """Resolves a usable ffmpeg executable.

    Args:
        transport: Optional httpx transport used for the download
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def resolve(self, settings: EncodeSettings) -> str:
        """Get the path of an executable ffmpeg binary.

        Args:
            settings: Run settings

        Returns:
            Path to the binary

        Raises:
            DownloadError: If the binary had to be downloaded and the download failed
        """
        logger = settings.logger
        version = settings.ffmpeg_version
        # Read on every call so a variable exported after import still applies
        override = settings.ffmpeg_override or os.environ.get(OVERRIDE_ENV_VAR)

        if override and os.path.exists(override):
            logger.info(f"> using external ffmpeg binary at: {override}")
            return override

        output = cache_path(settings)
        if os.path.exists(output):
            logger.info(f"> using an existing ffmpeg binary {version} at: {output}")
            return output

        logger.info(f"> ffmpeg binary {version} is not found")
        logger.info(f"> downloading a new ffmpeg binary {version} to: {output}")

        await self.download(download_url(settings), output, settings)

        logger.info(f"> ffmpeg binary {version} was successfully downloaded")
        return output

    async def download(self, url: str, output: str, settings: EncodeSettings) -> None:
        """Download a binary to output and mark it executable.

        The body is written to a temporary file next to output and renamed
        into place once complete.

        Raises:
            DownloadError: On a non-success status or any transfer/write failure
        """
        tmp_path = f"{output}.{uuid.uuid4().hex[:8]}.part"

        try:
            os.makedirs(os.path.dirname(output), exist_ok=True)

            async with httpx.AsyncClient(
                transport=self.transport,
                follow_redirects=True,
                timeout=settings.download_timeout,
            ) as client:
                async with client.stream("GET", url) as response:
                    if not response.is_success:
                        raise DownloadError(
                            url,
                            httpx.HTTPStatusError(
                                f"Initial error downloading file: HTTP {response.status_code}",
                                request=response.request,
                                response=response,
                            ),
                        )

                    total = int(response.headers.get("Content-Length", 0)) or None
                    progress = DownloadProgress(
                        total, settings.logger, settings.progress_interval
                    )

                    with open(tmp_path, "wb") as fh:
                        async for chunk in response.aiter_bytes():
                            fh.write(chunk)
                            progress.update(response.num_bytes_downloaded)

                    progress.finish()

            os.chmod(tmp_path, EXECUTABLE_MODE)
            self._install(tmp_path, output, settings)
        except (httpx.HTTPError, httpx.InvalidURL, OSError, ValueError) as e:
            raise DownloadError(url, e) from e
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def _install(self, tmp_path: str, output: str, settings: EncodeSettings) -> None:
        try:
            os.replace(tmp_path, output)
        except OSError:
            # Another run finished the same download first
            if not os.path.exists(output):
                raise
            log_warning(
                settings.logger,
                f"> ffmpeg binary already installed at: {output}",
                binary_path=output,
            )


_default_resolver = BinaryResolver()


async def resolve_binary(settings: EncodeSettings) -> str:
    """Resolve the ffmpeg binary with the default resolver."""
    return await _default_resolver.resolve(settings)
