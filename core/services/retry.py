"""Retry-once policy for operations that lost a concurrency race."""

import functools
import logging
from typing import Callable, TypeVar

from core.exceptions import ConflictError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


def retry_on_conflict(func: F) -> F:
    """
    Run the whole operation again once if it raised ConflictError.

    Only safe around methods whose writes all live in one transaction: a
    conflict means that transaction rolled back, so nothing is duplicated.
    A second conflict propagates to the caller.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConflictError as e:
            logger.warning(f"{func.__qualname__} conflicted, retrying once: {e}")
            return func(*args, **kwargs)

    return wrapper
