"""Bounded retry with exponential backoff around the extraction call.

Only RateLimitError is retried. When the proxy pool has addresses, a rate
limit moves to the next proxy and retries at once; without proxies it waits
base_delay * 2**n before retry n+1 (base, 2*base, 4*base, ...).
AuthRequiredError and every other failure are raised on the spot.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from ytaudio.services import logger
from ytaudio.services.proxy import ProxyPool, mask_proxy
from ytaudio.utils.exceptions import AuthRequiredError, RateLimitError


T = TypeVar("T")


def backoff_delay(retry_index: int, base_delay: float) -> float:
    """Delay before retry number retry_index + 1 (0-based index)."""
    return (2 ** retry_index) * base_delay


async def with_retry(
    call: Callable[[Optional[str]], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    proxy_pool: Optional[ProxyPool] = None,
    video_id: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run an extraction call with rate-limit retries.

    Args:
        call: Coroutine function taking the proxy URL to use (or None)
        max_attempts: Total attempts, so at most max_attempts - 1 retries
        base_delay: Delay before the first retry, doubled for each later one
        proxy_pool: Optional pool to rotate through on rate limits
        video_id: Video id for log context
        sleep: Awaitable sleep, swappable in tests

    Returns:
        Whatever the call returns on its first success

    Raises:
        RateLimitError: When every attempt was rate limited
        AuthRequiredError: Immediately, credentials need a refresh
        Exception: Any other failure, immediately
    """
    max_attempts = max(1, max_attempts)
    proxy = proxy_pool.next() if proxy_pool is not None else None

    for attempt in range(1, max_attempts + 1):
        context = {"video_id": video_id, "attempt": attempt, "max_attempts": max_attempts}
        if proxy:
            context["proxy"] = mask_proxy(proxy)

        try:
            return await call(proxy)

        except RateLimitError:
            if attempt >= max_attempts:
                logger.error(
                    f"Rate limited on all {max_attempts} attempts for {video_id}",
                    "retry",
                    context,
                )
                raise

            if proxy_pool is not None and len(proxy_pool) > 0:
                proxy = proxy_pool.next()
                logger.warn(
                    f"Rate limited on attempt {attempt}/{max_attempts}, rotating proxy",
                    "retry",
                    {**context, "next_proxy": mask_proxy(proxy)},
                )
            else:
                delay = backoff_delay(attempt - 1, base_delay)
                logger.warn(
                    f"Rate limited on attempt {attempt}/{max_attempts}, backing off {delay:.1f}s",
                    "retry",
                    {**context, "delay_seconds": delay},
                )
                await sleep(delay)

        except AuthRequiredError as e:
            logger.error(f"Authentication required for {video_id}: {e.message[:200]}", "retry", context)
            raise

        except Exception as e:
            logger.error(f"Extraction failed for {video_id}: {str(e)[:200]}", "retry", context)
            raise

    # Unreachable: the last attempt returns or raises
    raise RateLimitError(f"Retries exhausted for {video_id}")
