"""
Export Pipeline Errors

Every stage failure is raised as an ExportError subclass. The worker loop only
needs the ``retryable`` flag to decide between a retry and a terminal failure.
"""

from typing import Optional


TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "temporar",
    "busy",
    "connection",
    "network",
    "unavailable",
)

DATA_VIOLATION_MARKERS = (
    "invalid",
    "format",
    "cannot",
    "must",
    "not allowed",
)


def looks_transient(message: str) -> bool:
    message_lower = (message or "").lower()
    return any(marker in message_lower for marker in TRANSIENT_MARKERS)


def looks_like_data_violation(message: str) -> bool:
    message_lower = (message or "").lower()
    return any(marker in message_lower for marker in DATA_VIOLATION_MARKERS)


class ExportError(Exception):
    """Base class for pipeline failures."""
    retryable = False
    error_type = "export_error"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ValidationError(ExportError):
    """Malformed parameters, options or an unsupported format."""
    error_type = "validation_error"


class JobLimitError(ValidationError):
    """Owner already has the maximum number of active jobs."""
    error_type = "job_limit"


class JobNotFoundError(ExportError):
    error_type = "not_found"


class FileExpiredError(ExportError):
    """The job owning a file is past its retention window."""
    error_type = "file_expired"


class DataFetchError(ExportError):
    """The report data provider failed."""
    error_type = "data_fetch_error"

    def __init__(self, cause: BaseException):
        reason = getattr(cause, "message", None) or str(cause) or "Unknown error"
        super().__init__(f"Failed to generate report data: {reason}", cause=cause)
        if isinstance(cause, ValidationError):
            self.retryable = False
        else:
            self.retryable = not looks_like_data_violation(reason)


class GenerationError(ExportError):
    """A format strategy failed while producing its output."""
    error_type = "generation_error"

    def __init__(self, format_label: str, cause: BaseException):
        reason = getattr(cause, "message", None) or str(cause) or "Unknown error"
        super().__init__(f"{format_label} generation failed: {reason}", cause=cause)
        self.format_label = format_label
        self.retryable = looks_transient(reason)


class FileSizeError(ExportError):
    """The generated artifact is empty or exceeds the size cap."""
    error_type = "file_size_error"


class StoreError(ExportError):
    """Job or file metadata could not be persisted."""
    error_type = "store_error"
    retryable = True


def is_retryable(error: BaseException) -> bool:
    """Classify any exception raised during an attempt."""
    if isinstance(error, ExportError):
        return error.retryable
    return looks_transient(str(error))


def error_message(error: BaseException) -> str:
    if isinstance(error, ExportError):
        return error.message
    return str(error) or type(error).__name__
