"""
Bounded async retry with exponential backoff and jitter.

Used for every call to the embedding and language-model services. A
rate-limit signal takes the same backoff path as any transient failure.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional

from .errors import UpstreamServiceError

logger = logging.getLogger("leadscout.common.retry")

_NON_RETRYABLE_STATUS = {400, 401, 403, 404, 422}


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_rate_limited(exc: BaseException) -> bool:
    """True when the upstream told us to slow down."""
    if _status_code(exc) == 429:
        return True
    if type(exc).__name__ in ("RateLimitError", "ResourceExhausted"):
        return True
    return "rate limit" in str(exc).lower()


def default_is_retryable(exc: BaseException) -> bool:
    if is_rate_limited(exc):
        return True
    if isinstance(exc, (ValueError, TypeError)):
        return False
    status = _status_code(exc)
    if status is not None and status in _NON_RETRYABLE_STATUS:
        return False
    return True


def backoff_delay(
    attempt: int,
    *,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    jitter_ratio: float = 0.3,
) -> float:
    """Delay before retry number ``attempt`` (0-based)."""
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay * (1 + random.random() * jitter_ratio)


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    *,
    name: str = "upstream call",
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    jitter_ratio: float = 0.3,
    is_retryable: Callable[[BaseException], bool] = default_is_retryable,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Any:
    """
    Await ``operation()`` up to ``max_attempts`` times.

    Raises:
        UpstreamServiceError: when every attempt failed or the error was
            classified as not worth retrying. The last exception is chained.
    """
    last_exc: Optional[BaseException] = None
    attempts = max(1, max_attempts)

    for attempt in range(attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_exc = e
            if not is_retryable(e) or attempt == attempts - 1:
                break
            delay = backoff_delay(
                attempt,
                base_delay=base_delay,
                max_delay=max_delay,
                jitter_ratio=jitter_ratio,
            )
            logger.warning(
                "%s failed (attempt %d/%d%s): %s; retrying in %.2fs",
                name, attempt + 1, attempts,
                ", rate limited" if is_rate_limited(e) else "",
                e, delay,
            )
            await sleep(delay)

    rate_limited = last_exc is not None and is_rate_limited(last_exc)
    raise UpstreamServiceError(
        f"{name} failed after retries: {last_exc}",
        rate_limited=rate_limited,
    ) from last_exc
