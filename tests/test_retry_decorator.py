#!/usr/bin/env python3
"""
Tests for the retry decorator
"""
from unittest.mock import patch

import pytest

from taskflow.core.exceptions import InvalidTransitionError, StoreUnavailableError, ValidationError
from taskflow.utils.retry_decorator import _calculate_delay, retry_with_backoff


class TestRetryWithBackoff:
    """Retry behaviour of retry_with_backoff."""

    def test_retries_until_success(self):
        calls = []

        @retry_with_backoff(max_retries=3, base_delay=0, jitter=False, retryable_exceptions=(StoreUnavailableError,))
        def read():
            calls.append(1)
            if len(calls) < 3:
                raise StoreUnavailableError("timeout")
            return "row"

        with patch("taskflow.utils.retry_decorator.time.sleep") as mock_sleep:
            assert read() == "row"

        assert len(calls) == 3
        assert mock_sleep.call_count == 2

    def test_gives_up_after_max_retries(self):
        calls = []

        @retry_with_backoff(max_retries=2, base_delay=0, jitter=False, retryable_exceptions=(StoreUnavailableError,))
        def read():
            calls.append(1)
            raise StoreUnavailableError("down")

        with patch("taskflow.utils.retry_decorator.time.sleep"):
            with pytest.raises(StoreUnavailableError):
                read()

        assert len(calls) == 3

    def test_non_retryable_errors_raise_immediately(self):
        calls = []

        @retry_with_backoff(max_retries=3, base_delay=0, non_retryable_exceptions=(ValidationError,))
        def check():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            check()
        assert len(calls) == 1

    def test_errors_outside_retryable_set_are_not_retried(self):
        calls = []

        @retry_with_backoff(max_retries=3, base_delay=0, retryable_exceptions=(StoreUnavailableError,))
        def decide():
            calls.append(1)
            raise InvalidTransitionError("todo", "done")

        with pytest.raises(InvalidTransitionError):
            decide()
        assert len(calls) == 1

    def test_retryable_error_respects_its_own_budget(self):
        calls = []

        @retry_with_backoff(max_retries=5, base_delay=0, jitter=False)
        def read():
            calls.append(1)
            raise StoreUnavailableError("down", retry_count=1, max_retries=1)

        with pytest.raises(StoreUnavailableError):
            read()
        assert len(calls) == 1

    def test_wrapper_keeps_function_metadata(self):
        @retry_with_backoff(max_retries=1, base_delay=0)
        def fetch_task(task_id):
            """Load one task."""
            return task_id

        assert fetch_task.__name__ == "fetch_task"
        assert fetch_task.__doc__ == "Load one task."
        assert fetch_task("t-1") == "t-1"


def test_calculate_delay():
    assert _calculate_delay(0, 1.0, 60.0, 2.0, False) == 1.0
    assert _calculate_delay(3, 1.0, 60.0, 2.0, False) == 8.0
    assert _calculate_delay(10, 1.0, 5.0, 2.0, False) == 5.0

    jittered = _calculate_delay(1, 1.0, 60.0, 2.0, True)
    assert 2.0 <= jittered <= 2.5
