"""Bounded retry with exponential backoff for calls to remote services."""

from typing import Callable, Tuple, Type, TypeVar
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_call(
    fn: Callable[..., T],
    *args,
    retry_on: Tuple[Type[BaseException], ...],
    attempts: int = 3,
    backoff: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """
    Call ``fn`` and retry it while it raises one of ``retry_on``.

    The delay before attempt ``n`` (1-based, after the first) is
    ``backoff * 2 ** (n - 2)``. The last error is re-raised once
    ``attempts`` calls have failed; any other exception propagates
    immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    name = getattr(fn, '__qualname__', repr(fn))
    for attempt in range(attempts):
        try:
            return fn(*args, **kwargs)
        except retry_on as e:
            if attempt == attempts - 1:
                logger.error(f"{name} failed after {attempts} attempts: {e}")
                raise
            delay = backoff * (2 ** attempt)
            logger.warning(
                f"{name} failed (attempt {attempt + 1}/{attempts}): {e}. "
                f"Retrying in {delay:.2f}s"
            )
            sleep(delay)
    raise AssertionError("unreachable")
