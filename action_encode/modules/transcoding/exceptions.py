"""Exceptions raised by the encode action."""

from typing import Optional


class EncodeActionError(Exception):
    """Base exception for encode action failures."""
    pass


class DownloadError(EncodeActionError):
    """Exception when the ffmpeg binary cannot be downloaded."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        message = f"Unable to download ffmpeg binary from {url}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class SpawnError(EncodeActionError):
    """Exception when the ffmpeg process cannot be started."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Error starting ffmpeg process: {cause}")


class EncodeError(EncodeActionError):
    """Exception when ffmpeg exits with a non-zero code."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"Error in action-encode module (ffmpeg) code : {exit_code}")
