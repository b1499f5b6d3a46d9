"""Bounded exponential backoff for backend calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from doctrack_ocr.errors import NetworkFailure, RateLimited, ServerError
from doctrack_ocr.utils.config import RetryConfig
from doctrack_ocr.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

RETRYABLE_ERRORS = (RateLimited, ServerError, NetworkFailure)


def backoff_delay(policy: RetryConfig, attempt: int) -> float:
    """Seconds to wait before retry ``attempt`` (0-based)."""
    return policy.delay * policy.backoff**attempt


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryConfig | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds or the retry budget runs out.

    Rate limits, server errors and network failures are retried; rate
    limits honour the server's ``Retry-After`` when one was sent. Any
    other exception propagates on the first occurrence.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt.
        policy: Retry budget and backoff. Defaults to :class:`RetryConfig`.
        sleep: Awaitable sleep, replaceable in tests.

    Returns:
        The first successful result of ``fn``.

    Raises:
        RecognitionError: The last retryable error once ``max_retries``
            retries have failed, or the first non-retryable one.
    """
    policy = policy or RetryConfig()
    attempt = 0

    while True:
        try:
            return await fn()
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.max_retries:
                logger.error(
                    "Giving up after %d attempts: %s", attempt + 1, exc.user_message
                )
                raise

            if isinstance(exc, RateLimited) and exc.retry_after is not None:
                wait = exc.retry_after
            else:
                wait = backoff_delay(policy, attempt)

            logger.warning(
                "Attempt %d failed (%s), retrying in %.2fs",
                attempt + 1,
                exc.user_message,
                wait,
            )
            await sleep(wait)
            attempt += 1
