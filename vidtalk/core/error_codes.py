"""
Standardised error handling for VidTalk.
Every pipeline error is terminal for the current run; nothing is retried internally.
"""

from vidtalk.core.constants import ErrorCode


class JobError(Exception):
    """Raised when a processing run encounters a known error condition."""

    code = ErrorCode.UNEXPECTED

    def __init__(self, message: str, code: str | None = None):
        self.code = code or self.code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class ConversionError(JobError):
    """External conversion step failed or returned no audio."""
    code = ErrorCode.CONVERSION_FAILED


class DownloadError(JobError):
    """Converted audio could not be fetched."""
    code = ErrorCode.DOWNLOAD_FAILED


class InferenceError(JobError):
    """Speech-to-text call failed or returned malformed output."""
    code = ErrorCode.INFERENCE_FAILED


class PersistenceError(JobError):
    """A write to (or read from) the persistence gateway failed."""
    code = ErrorCode.PERSISTENCE_FAILED


def error_message(exc: BaseException) -> str:
    """Human-readable message to record on a failed job."""
    if isinstance(exc, JobError):
        return exc.message
    return str(exc) or type(exc).__name__


def error_code_for(exc: BaseException) -> str:
    return exc.code if isinstance(exc, JobError) else ErrorCode.UNEXPECTED
