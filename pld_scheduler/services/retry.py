"""
Explicit retry policy for idempotent reads.

Mutations are never routed through here: a submit or cancel that failed must be
re-issued by the caller, not replayed behind their back.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, Tuple, Type, TypeVar

from tenacity import AsyncRetrying, RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from pld_scheduler.core.config import settings
from pld_scheduler.core.exceptions import BackingStoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUCCEEDED = "succeeded"
EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2  # One automatic retry
    delay_seconds: float = 0.0
    retry_on: Tuple[Type[BaseException], ...] = (BackingStoreUnavailableError,)

    @classmethod
    def for_reads(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.scheduling.read_retry_attempts,
            delay_seconds=settings.scheduling.read_retry_delay_seconds,
        )

    def retrying_options(self) -> dict:
        return dict(
            stop=stop_after_attempt(max(self.max_attempts, 1)),
            wait=wait_fixed(self.delay_seconds),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=self._log_retry,
        )

    def _log_retry(self, retry_state) -> None:
        logger.warning(
            f"Read attempt {retry_state.attempt_number}/{self.max_attempts} failed: "
            f"{retry_state.outcome.exception()}"
        )


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    status: str
    attempts: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    def unwrap(self) -> T:
        """Return the value, or re-raise the last error once attempts are exhausted."""
        if self.succeeded:
            return self.value
        raise self.error


def _exhausted(e: RetryError) -> RetryOutcome:
    error = e.last_attempt.exception()
    logger.error(f"Read failed after {e.last_attempt.attempt_number} attempts: {error}")
    return RetryOutcome(status=EXHAUSTED, attempts=e.last_attempt.attempt_number, error=error)


def run_with_retry(operation: Callable[[], T], policy: RetryPolicy) -> RetryOutcome[T]:
    """
    Runs `operation` under `policy`. Errors outside `policy.retry_on` propagate untouched;
    retryable errors that outlast the policy come back as an exhausted outcome.
    """
    attempts = 0

    def attempt():
        nonlocal attempts
        attempts += 1
        return operation()

    try:
        value = Retrying(**policy.retrying_options())(attempt)
    except RetryError as e:
        return _exhausted(e)
    return RetryOutcome(status=SUCCEEDED, attempts=attempts, value=value)


async def arun_with_retry(operation: Callable[[], Awaitable[Any]], policy: RetryPolicy) -> RetryOutcome:
    attempts = 0

    async def attempt():
        nonlocal attempts
        attempts += 1
        return await operation()

    try:
        value = await AsyncRetrying(**policy.retrying_options())(attempt)
    except RetryError as e:
        return _exhausted(e)
    return RetryOutcome(status=SUCCEEDED, attempts=attempts, value=value)
