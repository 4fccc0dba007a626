"""Bounded retry helpers for remote state that is not available yet."""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from loguru import logger

from ..api.exceptions import AuthenticationError

T = TypeVar('T')


class OutcomeType(str, Enum):
    """How a retried operation finished."""

    SUCCESSFUL = 'successful'
    FAILURE = 'failure'


class PolicyResult(Generic[T]):
    """Outcome of :meth:`RetryPolicy.retry_on_result`."""

    def __init__(self, outcome: OutcomeType, result: Optional[T] = None):
        self.outcome = outcome
        self.result = result

    @property
    def successful(self) -> bool:
        return self.outcome is OutcomeType.SUCCESSFUL

    def __repr__(self) -> str:
        return f'PolicyResult(outcome={self.outcome.value}, result={self.result!r})'


class RetryPolicy:
    """Retry executor with a fixed attempt budget."""

    def __init__(self, max_attempts: int = 6, retry_interval: float = 4.0):
        """Initialize retry policy.

        Args:
            max_attempts: Total number of invocations, the first one included
            retry_interval: Seconds to wait between attempts
        """
        if max_attempts < 1:
            raise ValueError('max_attempts must be at least 1')

        self.max_attempts = max_attempts
        self.retry_interval = retry_interval
        self.logger = logger.bind(component='RetryPolicy')

    async def retry_on_result(
        self,
        operation: Callable[[], Awaitable[T]],
        sentinel: Any,
        retry_log_message: Optional[str] = None,
    ) -> PolicyResult[T]:
        """Invoke ``operation`` until it returns something other than ``sentinel``.

        Only a pending result is retried. Exceptions raised by the operation
        propagate immediately.

        Args:
            operation: Side-effect free query coroutine factory
            sentinel: Value meaning "not available yet"
            retry_log_message: Logged before each wait

        Returns:
            ``SUCCESSFUL`` with the first non-sentinel value, or ``FAILURE``
            once the attempt budget is spent
        """
        for attempt in range(1, self.max_attempts + 1):
            result = await operation()
            if result != sentinel:
                return PolicyResult(OutcomeType.SUCCESSFUL, result)

            if attempt < self.max_attempts:
                if retry_log_message:
                    self.logger.info(retry_log_message)
                await asyncio.sleep(self.retry_interval)

        self.logger.debug(f'No result after {self.max_attempts} attempts')
        return PolicyResult(OutcomeType.FAILURE)

    async def retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Invoke ``operation`` again when it raises, waiting longer each time.

        Authentication failures are raised right away.

        Args:
            operation: Coroutine factory to invoke

        Returns:
            The operation's result
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except AuthenticationError:
                raise
            except Exception as e:
                if attempt == self.max_attempts:
                    raise
                delay = attempt * self.retry_interval
                self.logger.debug(
                    f'Attempt {attempt} failed: {e}. Retrying in {delay} seconds'
                )
                await asyncio.sleep(delay)

        # Unreachable: the loop either returns or raises.
        raise RuntimeError('retry loop exited without a result')
