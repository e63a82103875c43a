"""Retry logic for transient browser failures."""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..constants import DEFAULT_RETRY_DELAY_SECS, MAX_RETRY_DELAY_SECS
from ..errors import ErrorClassifier, classify

import logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryResult:
    result: Any
    retries_used: int


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    retries: int = 2,
    base_delay: float = DEFAULT_RETRY_DELAY_SECS,
    exponential: bool = False,
    max_delay: float = MAX_RETRY_DELAY_SECS,
    classifier: Optional[ErrorClassifier] = None,
) -> RetryResult:
    """
    Await ``fn()`` and retry it while the failure classifies as retryable.

    Args:
        fn: Zero-argument coroutine factory
        retries: Number of retry attempts after the first call (0 = no retries)
        base_delay: Base delay between attempts in seconds (jittered)
        exponential: Double the delay after each attempt, capped at ``max_delay``
        classifier: Classifier deciding retryability (default rule set if None)

    Returns:
        RetryResult with the value and how many retries were needed

    Raises:
        BrowserToolError: the classified last error, or the first non-retryable one
    """
    to_typed = classifier.classify if classifier is not None else classify
    delay = base_delay

    for attempt in range(retries + 1):
        try:
            return RetryResult(result=await fn(), retries_used=attempt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = to_typed(e)
            if not err.retryable or attempt == retries:
                if err is e:
                    raise
                raise err from e
            logger.debug(f"Retrying after {err.code.value} (attempt {attempt + 1}/{retries}): {err.message}")
            await asyncio.sleep(delay * (1.0 + random.random()))
            if exponential:
                delay = min(delay * 2, max_delay)


__all__ = ["RetryResult", "retry_async"]
