"""
Bounded retry combinator.

'retry_bounded' calls an async attempt function until it succeeds, retrying
only on the given exception types. It never loops forever: after
'max_attempts' failed attempts it raises 'RetryExhaustedError' carrying the
last failure, which callers translate into their own domain error.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """All attempts failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


async def retry_bounded(
    attempt: Callable[[int], Awaitable[T]],
    max_attempts: int,
    retry_on: type[BaseException] | tuple[type[BaseException], ...],
) -> T:
    """Run 'attempt(n)' for n = 1..max_attempts until it returns.

    Exceptions not listed in 'retry_on' propagate immediately.

    Raises:
        ValueError: If 'max_attempts' is smaller than 1.
        RetryExhaustedError: If every attempt raised a retryable exception.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException | None = None
    for number in range(1, max_attempts + 1):
        try:
            return await attempt(number)
        except retry_on as exc:
            last_error = exc
            logger.warning(f"Attempt {number}/{max_attempts} failed: {exc}")

    assert last_error is not None
    raise RetryExhaustedError(max_attempts, last_error)
