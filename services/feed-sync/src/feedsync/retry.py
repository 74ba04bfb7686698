"""
Backoff policy for failed work.

The orchestrator uses RetryConfig to schedule queue-level retries of sync
and publication units; the publisher wraps its AWS calls in
retry_with_backoff.
"""

import functools
import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from feedsync.exceptions import FeedSyncError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """
    Attempt limit and delay schedule.

    Defaults give the engine policy: three attempts, 5s then 10s apart.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 5.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = False,
        jitter_range: Tuple[float, float] = (0.5, 1.5),
        retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
        non_retryable_exceptions: Tuple[Type[Exception], ...] = (),
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.jitter_range = jitter_range
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions

    def calculate_delay(self, attempt: int) -> float:
        """Delay after the retry with 0-based index ``attempt``."""
        delay = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(*self.jitter_range)
        return delay

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """
        Whether a unit that failed on ``attempt`` (1-based) gets another try.

        Engine errors flagged as non-retryable are never retried.
        """
        if attempt >= self.max_attempts:
            return False
        if isinstance(exception, self.non_retryable_exceptions):
            return False
        if isinstance(exception, FeedSyncError) and not exception.retryable:
            return False
        return isinstance(exception, self.retryable_exceptions)


def retry_with_backoff(
    config: Optional[RetryConfig] = None,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Retry a synchronous call in place, sleeping between attempts.

    Used for short AWS calls inside one work unit. Sync units themselves are
    retried through the work queue so no worker sleeps through a backoff.
    The decision to retry is ``RetryConfig.should_retry``; anything it
    rejects is re-raised at once.

    Example:
        @retry_with_backoff(max_attempts=3, base_delay=1.0, retryable_exceptions=(S3Error,))
        def upload_feed_to_s3(bucket, key, body):
            ...
    """
    if config is None:
        config = RetryConfig(
            max_attempts=max_attempts,
            base_delay=base_delay,
            max_delay=max_delay,
            jitter=True,
            retryable_exceptions=retryable_exceptions,
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not config.should_retry(e, attempt):
                        if attempt >= config.max_attempts:
                            logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        else:
                            logger.warning(f"{func.__name__} raised {type(e).__name__}, not retrying: {e}")
                        raise

                    delay = config.calculate_delay(attempt - 1)
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{config.max_attempts} failed: {e}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    if on_retry:
                        on_retry(e, attempt)
                    (sleep or time.sleep)(delay)
                    attempt += 1

        return wrapper
    return decorator
