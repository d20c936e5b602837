"""
Retry policy for cloud transcription requests.

Transient failures (network errors, rate limiting, 5xx responses, unparseable
bodies) are retried with exponential backoff; everything else is surfaced
immediately.
"""

import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ...utils.logger import get_logger
from ..settings.config import (
    MAX_RETRY_ATTEMPTS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_JITTER_SECONDS,
)
from .cancellation import CancellationToken, ensure_token
from .errors import (
    BackendError,
    InvalidResponseError,
    NetworkError,
    OperationCancelled,
    RateLimitedError,
    ServiceUnavailableError,
)

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (
    NetworkError,
    ServiceUnavailableError,
    RateLimitedError,
    InvalidResponseError,
)


@dataclass
class RetryState:
    attempt: int = 0
    last_error: Optional[BaseException] = None
    delay: float = 0.0


class RetryPolicy:
    def __init__(
        self,
        max_retries: int = MAX_RETRY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        jitter: float = RETRY_JITTER_SECONDS,
        sleep: Optional[Callable[[CancellationToken, float], Awaitable[bool]]] = None,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.jitter = jitter
        self._sleep = sleep or (lambda token, delay: token.sleep(delay))

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        return isinstance(error, RETRYABLE_ERRORS)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        cancel_token: Optional[CancellationToken] = None,
    ) -> T:
        token = ensure_token(cancel_token)
        state = RetryState()

        while True:
            token.raise_if_cancelled()
            try:
                return await operation()
            except BackendError as e:
                state.last_error = e

                if not self.is_retryable(e):
                    logger.error(f"Non-retryable error occurred: {e}")
                    raise

                if state.attempt >= self.max_retries:
                    logger.error(f"Max retry attempts ({self.max_retries}) reached")
                    raise

                state.attempt += 1
                state.delay = self.delay_for(state.attempt)
                logger.info(
                    f"Retrying (attempt {state.attempt}/{self.max_retries}) after "
                    f"{state.delay:.2f} seconds. Error: {e!r}"
                )

                completed = await self._sleep(token, state.delay)
                if not completed or token.is_cancelled:
                    raise OperationCancelled(
                        "Cancelled while waiting to retry"
                    ) from state.last_error
