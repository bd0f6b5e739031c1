"""Retry utilities with cancellable, linearly increasing backoff.

Used by the ingestion service to relay event logs to Kafka. Every failed
attempt, the last one included, is followed by a wait of
``attempt * backoff`` seconds (1s, 2s, 3s), so three failures cost 6s
before the last error is raised.
The wait races a timer against an optional cancellation signal so a
cancelled caller stops retrying immediately.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional

from tracking.common.logger import get_logger

logger = get_logger(__name__)


class RetryCancelledError(Exception):
    """Raised when the caller cancels while the retry loop is waiting."""
    pass


class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total number of calls, including the first one
        backoff: Delay unit in seconds; the wait after failed attempt N is N * backoff
    """

    def __init__(self, max_attempts: int = 3, backoff: float = 1.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff = backoff

    def get_delay(self, attempt: int) -> float:
        """Calculate the wait after a failed attempt.

        Args:
            attempt: Attempt number that just failed (1-indexed)

        Returns:
            Delay in seconds before the next attempt

        Example:
            With backoff=1.0:
            - after attempt 1: 1.0s
            - after attempt 2: 2.0s
            - after attempt 3: 3.0s
        """
        return self.backoff * attempt


async def wait_or_cancel(delay: float, cancelled: Optional[asyncio.Event] = None) -> None:
    """Sleep for ``delay`` seconds unless ``cancelled`` is set first.

    Raises:
        RetryCancelledError: If the cancellation signal fires before the timer
    """
    if cancelled is None:
        await asyncio.sleep(delay)
        return

    if cancelled.is_set():
        raise RetryCancelledError("Operation cancelled")

    try:
        await asyncio.wait_for(cancelled.wait(), timeout=delay)
    except asyncio.TimeoutError:
        # Timer won the race
        return

    raise RetryCancelledError("Operation cancelled while waiting to retry")


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    *,
    config: Optional[RetryConfig] = None,
    cancelled: Optional[asyncio.Event] = None,
    retry_on_exceptions: tuple = (Exception,),
) -> Any:
    """Call ``operation`` until it succeeds or attempts run out.

    Args:
        operation: Zero-argument coroutine function to call
        config: Retry configuration (3 attempts, 1s unit if None)
        cancelled: Optional cancellation signal for the caller's context
        retry_on_exceptions: Exception types treated as retryable

    Returns:
        Result from the first successful call

    Raises:
        RetryCancelledError: If ``cancelled`` fires during a wait
        The last exception if all attempts fail

    Example:
        ```python
        await with_retry(
            lambda: producer.publish(key, payload),
            config=RetryConfig(max_attempts=3),
            cancelled=request_cancelled,
        )
        ```
    """
    if config is None:
        config = RetryConfig()

    name = getattr(operation, "__name__", repr(operation))

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await operation()

            if attempt > 1:
                logger.info(
                    "Retry succeeded",
                    function=name,
                    attempt=attempt,
                )

            return result

        except retry_on_exceptions as e:
            last_error = e
            delay = config.get_delay(attempt)

            logger.warning(
                "Operation failed, waiting",
                function=name,
                attempt=attempt,
                max_attempts=config.max_attempts,
                delay_seconds=round(delay, 2),
                error=str(e),
            )

            await wait_or_cancel(delay, cancelled)

    logger.error(
        "All retries exhausted",
        function=name,
        total_attempts=config.max_attempts,
        error=str(last_error),
    )
    raise last_error
