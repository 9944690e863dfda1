"""
Exceptions raised by the story video worker.
"""

from typing import Optional


class VideoWorkerError(Exception):
    """Base class for all worker errors."""


class ConfigurationError(VideoWorkerError):
    """A required setting is missing or malformed."""


class ClientInitError(VideoWorkerError):
    """An external client (database, storage) could not be initialized."""


class InvalidAssetError(VideoWorkerError):
    """A segment is missing an asset URL or the URL is not http(s)."""


class DownloadError(VideoWorkerError):
    pass


class UploadError(VideoWorkerError):
    pass


class RenderError(VideoWorkerError):
    """
    The render engine exited with a non-zero status, timed out or could
    not be started. Carries the tail of the engine output and the path of
    the side-channel log for diagnostics.
    """

    def __init__(self, message: str, stderr: str = "", log_path: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr
        self.log_path = log_path


class MergeError(RenderError):
    pass


class TranscriptionError(VideoWorkerError):
    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class TranscriptionUnavailableError(TranscriptionError):
    """The transcription engine could not be spawned (not installed)."""


class AccessDeniedError(VideoWorkerError):
    """The client address is not on the control API allow-list."""

    def __init__(self, client_ip: str):
        super().__init__(f"Access denied for {client_ip}")
        self.client_ip = client_ip
