# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Retry Utilities with Exponential Backoff

Provides decorators and utilities for retrying failed operations.
"""

import asyncio
import random
from typing import Callable, Any, Awaitable, Optional, Type, Tuple
from functools import wraps

from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential: bool = True,
    jitter: bool = True,
) -> float:
    """
    Calculate retry delay with exponential backoff and optional jitter.

    Jitter is additive: a uniform amount in [0, base_delay) is added on top of
    the computed delay, so the n-th retry never waits less than base * 2**n.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        exponential: Use exponential backoff
        jitter: Add random jitter to prevent thundering herd

    Returns:
        Delay in seconds
    """
    if exponential:
        delay = base_delay * (2 ** attempt)
    else:
        delay = base_delay * (attempt + 1)

    delay = min(delay, max_delay)

    if jitter:
        delay += random.uniform(0, base_delay)

    return delay


def retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_backoff: bool = True,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
):
    """
    Decorator to retry coroutine calls with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_backoff: Use exponential backoff
        jitter: Add random jitter to delays
        exceptions: Tuple of exception types to catch and retry
        should_retry: Predicate deciding whether a caught exception is retried at all
        on_retry: Optional callback called on each retry (exception, attempt)

    Example:
        ```python
        @retry(max_attempts=3, base_delay=1.0, exceptions=(httpx.TransportError,))
        async def fetch_status():
            ...
        ```
    """

    def decorator(func: Callable) -> Callable:

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            return await retry_async(
                func,
                *args,
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                exponential_backoff=exponential_backoff,
                jitter=jitter,
                exceptions=exceptions,
                should_retry=should_retry,
                on_retry=on_retry,
                **kwargs,
            )

        return async_wrapper

    return decorator


async def retry_async(
    func: Callable,
    *args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_backoff: bool = True,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Optional[Callable[[Exception], bool]] = None,
    delay_for: Optional[Callable[[Exception, int], float]] = None,
    on_retry: Optional[Callable[[Exception, int], None]] = None,
    sleep: SleepFunc = asyncio.sleep,
    **kwargs,
) -> Any:
    """
    Retry an async function call with exponential backoff.

    Args:
        func: Async function to call
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts (first call included)
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_backoff: Use exponential backoff
        jitter: Add random jitter to delays
        exceptions: Tuple of exception types to catch and retry
        should_retry: Predicate deciding whether a caught exception is retried at all
        delay_for: Overrides the computed delay, called with (exception, attempt)
        on_retry: Optional callback called on each retry (exception, attempt)
        sleep: Coroutine used to wait between attempts
        **kwargs: Keyword arguments for func

    Returns:
        Result of successful function call

    Raises:
        Last exception if all attempts fail or the predicate rejects it
    """
    name = getattr(func, "__name__", repr(func))
    last_exception: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)

        except exceptions as e:
            last_exception = e

            if should_retry is not None and not should_retry(e):
                raise

            if attempt >= max_attempts - 1:
                logger.error(
                    "retry_exhausted",
                    function=name,
                    max_attempts=max_attempts,
                    error=str(e),
                )
                break

            if delay_for is not None:
                delay = delay_for(e, attempt)
            else:
                delay = calculate_backoff(
                    attempt=attempt,
                    base_delay=base_delay,
                    max_delay=max_delay,
                    exponential=exponential_backoff,
                    jitter=jitter,
                )

            logger.warning(
                "retry_attempt",
                function=name,
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay=round(delay, 3),
                error=str(e),
            )

            if on_retry:
                on_retry(e, attempt + 1)

            await sleep(delay)

    assert last_exception is not None
    raise last_exception
