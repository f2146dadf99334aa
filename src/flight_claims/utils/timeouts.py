"""Bounded-time calls to external collaborators."""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Callable, TypeVar

from flight_claims.exceptions import DependencyTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_timeout(
    func: Callable[..., T],
    *args,
    timeout: float,
    description: str = "external call",
    claim_id: str | None = None,
    **kwargs,
) -> T:
    """Run func in a worker thread and wait at most `timeout` seconds.

    A timeout raises DependencyTimeoutError. The worker is abandoned, not killed, so
    the callee may still complete; callers must treat the outcome as unknown.
    Exceptions raised by func propagate unchanged.
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ext-call")
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FuturesTimeout as e:
        logger.warning("%s timed out after %.1fs (claim=%s)", description, timeout, claim_id)
        raise DependencyTimeoutError(
            f"{description} timed out after {timeout:.1f}s", claim_id=claim_id
        ) from e
    finally:
        # Never block on a hung worker
        executor.shutdown(wait=False)
