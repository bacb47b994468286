"""
Tests for backoff helpers.
"""

from tribora.utils.backoff import IdleBackoff, calculate_backoff
from tribora.utils.error_codes import ErrorCode, StorageError, get_error_category, is_retryable


class TestBackoff:
    def test_calculate_backoff(self):
        assert calculate_backoff(2, 1, 60) == 4
        assert calculate_backoff(2, 5, 60) == 60

    def test_idle_backoff_grows_and_resets(self):
        backoff = IdleBackoff(base=2.0, max_delay=10.0)
        assert [backoff.record_empty() for _ in range(4)] == [4.0, 8.0, 10.0, 10.0]
        backoff.reset()
        assert backoff.next_delay == 2.0


class TestErrorCodes:
    def test_categories(self):
        assert get_error_category(ErrorCode.RATE_LIMITED) == 'transient'
        assert get_error_category(ErrorCode.CORRUPT_MEDIA) == 'permanent'
        assert get_error_category(ErrorCode.UNKNOWN_ERROR) == 'system'
        assert not is_retryable(ErrorCode.UNKNOWN_ERROR)

    def test_storage_error_defaults_to_retryable(self):
        assert StorageError('connection reset').retryable is True
        assert StorageError('gone', ErrorCode.NOT_FOUND).retryable is False
