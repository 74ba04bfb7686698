"""Tests for retry utilities."""

import pytest
from unittest.mock import Mock

from feedsync.exceptions import SourcePlatformError, ValidationError
from feedsync.retry import RetryConfig, retry_with_backoff


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_config(self):
        """Test default retry configuration."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 5.0
        assert config.jitter is False

    def test_calculate_delay_exponential(self):
        """Test exponential backoff calculation."""
        config = RetryConfig()

        assert config.calculate_delay(0) == 5.0
        assert config.calculate_delay(1) == 10.0
        assert config.calculate_delay(2) == 20.0

    def test_calculate_delay_max_cap(self):
        """Test delay is capped at max_delay."""
        config = RetryConfig(base_delay=10.0, max_delay=30.0)

        assert config.calculate_delay(5) == 30.0

    def test_calculate_delay_jitter(self):
        """Test jitter adds randomness."""
        config = RetryConfig(base_delay=1.0, jitter=True, jitter_range=(0.5, 1.5))

        delays = [config.calculate_delay(0) for _ in range(10)]
        assert not all(d == delays[0] for d in delays)

    def test_should_retry_stops_at_max_attempts(self):
        config = RetryConfig(max_attempts=3)
        error = SourcePlatformError("Bad gateway", status_code=502)

        assert config.should_retry(error, 1)
        assert config.should_retry(error, 2)
        assert not config.should_retry(error, 3)

    def test_should_retry_respects_error_flag(self):
        config = RetryConfig()
        assert not config.should_retry(SourcePlatformError("Forbidden", status_code=403), 1)
        assert not config.should_retry(
            ValidationError(message="bad", field_name="x", expected="y", actual=None), 1
        )


class TestRetryWithBackoff:
    """Tests for retry_with_backoff decorator."""

    def test_success_no_retry(self):
        """Test successful call doesn't retry."""
        call_count = 0

        @retry_with_backoff(max_attempts=3, base_delay=0.01)
        def successful_func():
            nonlocal call_count
            call_count += 1
            return "success"

        result = successful_func()
        assert result == "success"
        assert call_count == 1

    def test_retry_on_exception(self):
        """Test retry on exception."""
        call_count = 0
        sleep = Mock()

        @retry_with_backoff(max_attempts=3, base_delay=0.01, sleep=sleep)
        def failing_then_success():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError("Temporary failure")
            return "success"

        result = failing_then_success()
        assert result == "success"
        assert call_count == 3
        assert sleep.call_count == 2

    def test_max_retries_exceeded(self):
        """Test exception raised after max retries."""
        call_count = 0

        @retry_with_backoff(max_attempts=3, base_delay=0.01, sleep=Mock())
        def always_failing():
            nonlocal call_count
            call_count += 1
            raise ValueError("Always fails")

        with pytest.raises(ValueError, match="Always fails"):
            always_failing()

        assert call_count == 3

    def test_non_retryable_exception(self):
        """Test non-retryable exceptions aren't retried."""
        call_count = 0

        config = RetryConfig(
            max_attempts=3,
            base_delay=0.01,
            non_retryable_exceptions=(TypeError,),
            retryable_exceptions=(Exception,),
        )

        @retry_with_backoff(config=config)
        def raises_type_error():
            nonlocal call_count
            call_count += 1
            raise TypeError("Non-retryable")

        with pytest.raises(TypeError):
            raises_type_error()

        assert call_count == 1

    def test_unlisted_exception_propagates(self):
        call_count = 0

        @retry_with_backoff(max_attempts=3, retryable_exceptions=(ConnectionError,), sleep=Mock())
        def raises_key_error():
            nonlocal call_count
            call_count += 1
            raise KeyError("missing")

        with pytest.raises(KeyError):
            raises_key_error()
        assert call_count == 1

    def test_on_retry_callback(self):
        """Test on_retry callback is called."""
        retries = []

        def on_retry(exc, attempt):
            retries.append((str(exc), attempt))

        call_count = 0

        @retry_with_backoff(max_attempts=3, base_delay=0.01, on_retry=on_retry, sleep=Mock())
        def failing_twice():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ValueError(f"Attempt {call_count}")
            return "success"

        result = failing_twice()
        assert result == "success"
        assert retries == [("Attempt 1", 1), ("Attempt 2", 2)]
