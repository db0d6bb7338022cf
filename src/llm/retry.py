"""
Bounded exponential backoff for rate-limited LLM calls.

Collaborator calls are wrapped in ``run_with_retry``: rate-limit failures
are retried with a doubling delay up to ``max_retries`` times, then the
original error propagates. Every other error propagates immediately.

The sleep function is injectable so tests run without real delays.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from src.core.config import RetryPolicy
from src.core.exceptions import LLMRateLimitError

log = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

_RATE_LIMIT_MARKERS = ("429", "quota", "rate limit", "resource_exhausted")


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True when ``error`` signals a rate-limit / quota condition.

    Recognizes LLMRateLimitError, foreign errors carrying an HTTP 429
    ``status``/``code``/``status_code`` attribute, and messages mentioning
    429 or quota exhaustion.
    """
    if isinstance(error, LLMRateLimitError):
        return True

    for attr in ("status", "code", "status_code"):
        if getattr(error, attr, None) == 429:
            return True

    response = getattr(error, "response", None)
    if response is not None and getattr(response, "status_code", None) == 429:
        return True

    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    sleep: Sleep = asyncio.sleep,
    operation_name: str = "llm_call",
) -> T:
    """
    Run ``operation`` retrying rate-limit failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Retry bound and base delay (defaults to RetryPolicy())
        sleep: Awaitable sleep used between attempts
        operation_name: Name used in log events

    Returns:
        The operation's result

    Raises:
        The last error once retries are exhausted, or any non rate-limit
        error immediately
    """
    policy = policy or RetryPolicy()
    delay = policy.base_delay

    for attempt in range(policy.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_rate_limit_error(e) or attempt >= policy.max_retries:
                if is_rate_limit_error(e):
                    log.warning(
                        "rate_limit_retries_exhausted",
                        operation=operation_name,
                        attempts=attempt + 1,
                    )
                raise

            log.warning(
                "rate_limit_retry",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=policy.max_retries,
                delay_seconds=delay,
            )
            await sleep(delay)
            delay *= 2

    # Unreachable: loop either returns or raises
    assert False, "unreachable"
