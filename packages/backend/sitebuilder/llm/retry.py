from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, BaseException, float], Any]


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay before the next attempt, proportional to the attempt that just failed."""
    return float(base_delay) * max(1, int(attempt))


async def with_retry(
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    max_retries: int = 3,
    base_delay: float = 1.0,
    retry_on: Optional[Tuple[Type[BaseException], ...]] = None,
    on_retry: Optional[RetryCallback] = None,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with linear backoff retry.

    Args:
        func: Async function to execute
        max_retries: Maximum number of attempts (including the first)
        base_delay: Base delay in seconds (multiplied by the attempt number)
        retry_on: Exception types that should be retried. If None, retry all.
        on_retry: Called with (attempt, exception, delay) before each retry.
    """
    attempts = max(1, int(max_retries))
    last_exception: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            last_exception = exc
            if retry_on is not None and not isinstance(exc, retry_on):
                raise
            if attempt >= attempts:
                logger.error("All %s attempts failed: %s", attempts, exc)
                break
            delay = backoff_delay(base_delay, attempt)
            logger.warning(
                "Attempt %s/%s failed: %s. Retrying in %.2fs...",
                attempt,
                attempts,
                exc,
                delay,
            )
            if on_retry is not None:
                result = on_retry(attempt, exc, delay)
                if asyncio.iscoroutine(result):
                    await result
            await asyncio.sleep(delay)

    if last_exception is None:
        raise RuntimeError("Retry failed without capturing an exception")
    raise last_exception


__all__ = ["with_retry", "backoff_delay"]
