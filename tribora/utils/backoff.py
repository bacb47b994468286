"""
Exponential backoff helpers shared by the retry policy and the worker poll loop.

Usage:
    delay = calculate_backoff(base=2, attempts=3, max_delay=60)  # 16

    backoff = IdleBackoff(base=2.0, max_delay=10.0)
    backoff.record_empty()   # next_delay doubles, capped at max_delay
    backoff.reset()          # work found, back to base
"""
import logging

logger = logging.getLogger(__name__)


def calculate_backoff(base: float, attempts: int, max_delay: float) -> float:
    """Return min(base * 2^attempts, max_delay)."""
    return min(base * (2 ** max(attempts, 0)), max_delay)


class IdleBackoff:
    """Tracks consecutive empty polls and the resulting sleep interval."""

    def __init__(self, base: float, max_delay: float):
        self.base = base
        self.max_delay = max_delay
        self.consecutive_empty = 0

    @property
    def next_delay(self) -> float:
        if self.consecutive_empty == 0:
            return self.base
        return calculate_backoff(self.base, self.consecutive_empty, self.max_delay)

    def record_empty(self) -> float:
        """Record an empty poll and return how long to sleep."""
        self.consecutive_empty += 1
        if self.consecutive_empty == 1:
            logger.debug(f"No jobs found, entering backoff mode (interval {self.next_delay:.1f}s)")
        elif self.consecutive_empty % 5 == 0:
            logger.debug(f"Still idle after {self.consecutive_empty} polls (interval {self.next_delay:.1f}s)")
        return self.next_delay

    def reset(self):
        if self.consecutive_empty:
            logger.debug(f"Jobs detected, resetting poll interval to {self.base:.1f}s")
        self.consecutive_empty = 0
