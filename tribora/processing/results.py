"""Stage handler results."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tribora.utils.error_codes import ErrorCode, is_retryable


@dataclass
class NextJob:
    """Job a successful stage asks the supervisor to enqueue."""
    type: str
    payload: Dict[str, Any]


@dataclass
class StageResult:
    """
    Outcome of one stage handler run.

    Built with StageResult.ok(...) or StageResult.failed(...); the worker
    supervisor turns it into queue/status side effects.
    """
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    next_job: Optional[NextJob] = None
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None
    retryable: bool = False

    @classmethod
    def ok(cls, data: Optional[Dict[str, Any]] = None, next_job: Optional[NextJob] = None) -> 'StageResult':
        return cls(success=True, data=data or {}, next_job=next_job)

    @classmethod
    def failed(cls, error_code: ErrorCode, message: str, retryable: Optional[bool] = None) -> 'StageResult':
        return cls(
            success=False,
            error_code=error_code,
            error=message,
            retryable=is_retryable(error_code) if retryable is None else retryable,
        )
