"""
Retry Policy - decides whether a failed stage is re-enqueued or terminal.

A job row carries its 1-based attempt number. A retryable failure on attempt
N (N <= max_retries) produces a new pending job with attempts N + 1 and a
run_at pushed out by exponential backoff. Everything else is terminal for the
chain: non-retryable results, and retryable results once the ceiling is hit.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from tribora.database.models import utcnow
from tribora.processing.results import StageResult
from tribora.utils.backoff import calculate_backoff


@dataclass
class RetryDecision:
    retry: bool
    next_attempt: Optional[int] = None
    run_at: Optional[datetime] = None
    delay_seconds: float = 0.0
    reason: str = ''


class RetryPolicy:
    """Bounded retry with exponential backoff."""

    def __init__(self, max_retries: int = 3, backoff_base_seconds: float = 2,
                 backoff_max_seconds: float = 60):
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self.backoff_max_seconds = backoff_max_seconds

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> 'RetryPolicy':
        retry_config = (config or {}).get('retry', {})
        return cls(
            max_retries=retry_config.get('max_retries', 3),
            backoff_base_seconds=retry_config.get('backoff_base_seconds', 2),
            backoff_max_seconds=retry_config.get('backoff_max_seconds', 60),
        )

    def should_retry(self, result: StageResult, attempts: int) -> bool:
        return (not result.success) and result.retryable and attempts <= self.max_retries

    def backoff_seconds(self, attempts: int) -> float:
        return calculate_backoff(self.backoff_base_seconds, attempts, self.backoff_max_seconds)

    def decide(self, result: StageResult, attempts: int, now: Optional[datetime] = None) -> RetryDecision:
        if result.success:
            return RetryDecision(retry=False, reason='succeeded')
        if not result.retryable:
            return RetryDecision(retry=False, reason='permanent failure')
        if attempts > self.max_retries:
            return RetryDecision(retry=False, reason=f'retry ceiling reached ({self.max_retries})')
        delay = self.backoff_seconds(attempts)
        return RetryDecision(
            retry=True,
            next_attempt=attempts + 1,
            run_at=(now or utcnow()) + timedelta(seconds=delay),
            delay_seconds=delay,
            reason='transient failure',
        )
