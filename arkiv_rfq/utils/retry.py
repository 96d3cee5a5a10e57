import asyncio
import re
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from arkiv_rfq.config.retry import RetryConfig
from arkiv_rfq.utils.errors import NetworkError, OwnershipError, SignatureError, ValidationError
from arkiv_rfq.utils.logger import LogArgs, get_logger

T = TypeVar('T')

NON_RETRYABLE_ERRORS = (ValidationError, OwnershipError, SignatureError)
# client side HTTP failures will not succeed on a second try
NON_RETRYABLE_STATUS_RE = re.compile(r'\b(400|404)\b')

logger = get_logger(__name__)


class RetryPolicy(BaseModel):
    max_retries: int = Field(3, ge=0)
    initial_delay: int = Field(1000, ge=0)  # ms
    max_delay: int = Field(10000, ge=0)  # ms
    backoff_multiplier: float = Field(2, gt=0)

    @classmethod
    def from_config(cls, config: RetryConfig) -> 'RetryPolicy':
        return cls(
            max_retries=config.RETRY_MAX_RETRIES,
            initial_delay=config.RETRY_INITIAL_DELAY_MS,
            max_delay=config.RETRY_MAX_DELAY_MS,
            backoff_multiplier=config.RETRY_BACKOFF_MULTIPLIER,
        )

    def delay_before(self, attempt: int) -> float:
        """Delay in ms before retry number `attempt` (1-based)."""
        return min(self.initial_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_non_retryable(exception: BaseException) -> bool:
    if isinstance(exception, NON_RETRYABLE_ERRORS):
        return True
    return bool(NON_RETRYABLE_STATUS_RE.search(str(exception)))


def _should_retry(exception: BaseException) -> bool:
    return isinstance(exception, Exception) and not is_non_retryable(exception)


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(
            f'{operation} failed, retrying',
            extra={
                LogArgs.operation: operation,
                LogArgs.attempt: retry_state.attempt_number,
                LogArgs.delay: retry_state.next_action.sleep if retry_state.next_action else None,
                LogArgs.ex: repr(exc),
            },
        )

    return before_sleep


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    operation: str = 'store call',
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Invoke `fn` up to policy.max_retries + 1 times with exponential backoff.

    Args:
        fn: zero-argument coroutine function performing a single store round-trip
        policy: retry limits and delays, DEFAULT_RETRY_POLICY when omitted
        operation: name used in logs and in the final error
        sleep: awaitable sleep, seconds

    Returns:
        Whatever `fn` returns on the first successful attempt.

    Raises:
        ValidationError, OwnershipError, SignatureError: raised by `fn`, never retried
        NetworkError: attempts exhausted, or a non-retryable store failure (HTTP 400/404)
    """
    policy = policy or DEFAULT_RETRY_POLICY
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_exponential(
            multiplier=policy.initial_delay / 1000,
            exp_base=policy.backoff_multiplier,
            max=policy.max_delay / 1000,
        ),
        retry=retry_if_exception(_should_retry),
        before_sleep=_log_retry(operation),
        sleep=sleep,
        reraise=False,
    )
    attempts = 0

    async def attempt() -> T:
        nonlocal attempts
        attempts += 1
        return await fn()

    try:
        return await retrying(attempt)
    except RetryError as e:
        last_attempt = e.last_attempt
        cause = last_attempt.exception()
        error = NetworkError(
            f'{operation} failed after {last_attempt.attempt_number} attempts',
            attempts=last_attempt.attempt_number,
            cause=cause,
        )
        logger.error(*error.to_log_args(), extra={**error.to_dict(), LogArgs.operation: operation})
        raise error from cause
    except NON_RETRYABLE_ERRORS:
        raise
    except Exception as e:
        error = NetworkError(
            f'{operation} failed with a non-retryable error',
            attempts=attempts,
            cause=e,
        )
        logger.error(*error.to_log_args(), extra={**error.to_dict(), LogArgs.operation: operation})
        raise error from e
