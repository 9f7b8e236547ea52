from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

import requests

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    # total number of tries, the first call included
    attempts: int = 2
    base_delay_s: float = 0.5
    max_delay_s: float = 2.0
    retry_on: Tuple[Type[BaseException], ...] = (
        requests.ConnectionError,
        requests.Timeout,
    )


NO_RETRY = RetryPolicy(attempts=1)


def with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """Call ``fn`` until it succeeds or ``policy.attempts`` is exhausted.

    Only exceptions listed in ``policy.retry_on`` are retried; anything else
    propagates from the first failing call.
    """
    last_exc: BaseException | None = None
    delay = policy.base_delay_s
    for attempt in range(1, policy.attempts + 1):
        try:
            return fn()
        except policy.retry_on as e:
            last_exc = e
            if attempt == policy.attempts:
                break
            logger.debug("Attempt %d failed with %r, retrying in %.2fs", attempt, e, delay)
            if on_retry is not None:
                on_retry(attempt, e)
            time.sleep(delay)
            delay = min(policy.max_delay_s, delay * 2)
    assert last_exc is not None
    raise last_exc
