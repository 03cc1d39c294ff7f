"""Retry decorator for transient upstream errors."""

import random
import time
from functools import wraps
from typing import Any, Callable, Iterator, Optional, Tuple, Type, TypeVar

from grammar_coach import config
from grammar_coach.utils.logger import get_logger

logger = get_logger()

F = TypeVar('F', bound=Callable[..., Any])

def backoff_delays(initial_delay: float, backoff_factor: float, jitter: float) -> Iterator[float]:
    """Yields successive wait times: initial_delay * backoff_factor**n, +/- jitter * delay."""
    delay = initial_delay
    while True:
        yield max(0.0, delay + delay * jitter * random.uniform(-1, 1))
        delay *= backoff_factor

def retry_on_exception(
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[F], F]:
    """Retries the decorated call on `exceptions` with exponential backoff.

    Args:
        exceptions: Exception types that trigger a retry.
        max_attempts: Total attempts, including the first.
        initial_delay: Seconds to wait before the first retry.
        backoff_factor: Multiplier applied to the delay after each retry.
        jitter: Fraction of the delay added or removed at random.
        should_retry: Optional predicate. A caught exception for which it
            returns False is re-raised at once.

    The last exception is re-raised once attempts are exhausted.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delays = backoff_delays(initial_delay, backoff_factor, jitter)
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt == max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts ({type(e).__name__}).",
                            exc_info=config.DEBUG
                        )
                        raise
                    wait = next(delays)
                    logger.warning(
                        f"{func.__name__} failed with {type(e).__name__} "
                        f"(attempt {attempt}/{max_attempts}), retrying in {wait:.2f}s"
                    )
                    time.sleep(wait)
            raise RuntimeError(f"{func.__name__} called with max_attempts={max_attempts}")

        return wrapper # type: ignore
    return decorator
