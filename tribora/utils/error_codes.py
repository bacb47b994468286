"""
Error code definitions for the content processing pipeline.

This module defines standardized error codes, their retry category, and the
exceptions raised by storage and capability adapters so that every stage
handler reports failures the same way.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Standardized error codes for the processing pipeline."""

    # Transient errors (should retry)
    NETWORK_ERROR = "network_error"
    STORAGE_CONNECTION_ERROR = "storage_connection_error"
    TIMEOUT = "timeout"
    TEMPORARY_FAILURE = "temporary_failure"
    RATE_LIMITED = "rate_limited"  # HTTP 429 Too Many Requests

    # Permanent errors (should not retry)
    NOT_FOUND = "not_found"
    INVALID_PAYLOAD = "invalid_payload"
    INVALID_FORMAT = "invalid_format"
    CORRUPT_MEDIA = "corrupt_media"
    UNSUPPORTED_FORMAT = "unsupported_format"
    QUOTA_EXCEEDED = "quota_exceeded"
    CAPABILITY_REJECTED = "capability_rejected"

    # Missing inputs
    MISSING_SOURCE = "missing_source"
    MISSING_TRANSCRIPT = "missing_transcript"

    # Processing results
    EMPTY_RESULT = "empty_result"
    NO_SPEECH_DETECTED = "no_speech_detected"

    # System errors
    PROCESS_FAILED = "process_failed"
    UNKNOWN_ERROR = "unknown_error"


_TRANSIENT = {
    ErrorCode.NETWORK_ERROR,
    ErrorCode.STORAGE_CONNECTION_ERROR,
    ErrorCode.TIMEOUT,
    ErrorCode.TEMPORARY_FAILURE,
    ErrorCode.RATE_LIMITED,
    ErrorCode.PROCESS_FAILED,
}

_PERMANENT = {
    ErrorCode.NOT_FOUND,
    ErrorCode.INVALID_PAYLOAD,
    ErrorCode.INVALID_FORMAT,
    ErrorCode.CORRUPT_MEDIA,
    ErrorCode.UNSUPPORTED_FORMAT,
    ErrorCode.QUOTA_EXCEEDED,
    ErrorCode.CAPABILITY_REJECTED,
    ErrorCode.MISSING_SOURCE,
    ErrorCode.MISSING_TRANSCRIPT,
    ErrorCode.EMPTY_RESULT,
    ErrorCode.NO_SPEECH_DETECTED,
}


def get_error_category(error_code: ErrorCode) -> str:
    """Return 'transient', 'permanent' or 'system' for an error code."""
    if error_code in _TRANSIENT:
        return 'transient'
    if error_code in _PERMANENT:
        return 'permanent'
    return 'system'


def is_retryable(error_code: ErrorCode) -> bool:
    return get_error_category(error_code) == 'transient'


class PipelineError(Exception):
    """Base class for pipeline errors carrying an ErrorCode."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
                 retryable: Optional[bool] = None):
        super().__init__(message)
        self.error_code = error_code
        self.retryable = is_retryable(error_code) if retryable is None else retryable


class CapabilityError(PipelineError):
    """Raised by external capability adapters (transcoding, STT, LLM, OCR...)."""


class StorageError(PipelineError):
    """Raised by blob storage operations."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORAGE_CONNECTION_ERROR,
                 retryable: Optional[bool] = None):
        super().__init__(message, error_code, retryable)


class ValidationError(Exception):
    """Rejected input at intake time; nothing has been written."""


class UploadError(Exception):
    """Storage or database failure during intake, after compensation ran."""


class ContentNotFoundError(Exception):
    """No content record with that id (in that organization)."""


class LeaseLostError(Exception):
    """The job is no longer processing under this worker (lease expired and reclaimed)."""
