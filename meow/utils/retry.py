"""Retry logic with exponential backoff."""

import functools
import time
from typing import Callable, Optional, Tuple, Type

from meow.utils.logging import log_warning


def retry_with_backoff(
    retries: int = 3,
    delays: Optional[Tuple[float, ...]] = None,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable:
    """
    Decorator for retrying a function with exponential backoff.

    Args:
        retries: Number of retries (default: 3)
        delays: Delay in seconds before each retry (default: 1, 2, 4, ...)
        exceptions: Exception types that trigger a retry (default: all)

    Example:
        @retry_with_backoff(retries=2, exceptions=(ConnectionError,))
        def embed(text):
            return client.embeddings.create(input=text, model=model)
    """
    if delays is None:
        delays = tuple(2**i for i in range(retries))
    elif len(delays) < retries:
        # Pad delays with the last value if not enough provided
        delays = delays + (delays[-1],) * (retries - len(delays))

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == retries:
                        raise
                    log_warning(f"retrying {getattr(func, '__name__', func)} attempt={attempt + 1} error={e}")
                    time.sleep(delays[attempt])

        return wrapper

    return decorator
