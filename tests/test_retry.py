import asyncio
import pytest

from pld_scheduler.core.exceptions import BackingStoreUnavailableError, NotFoundError
from pld_scheduler.services.retry import RetryPolicy, arun_with_retry, run_with_retry

POLICY = RetryPolicy(max_attempts=2, delay_seconds=0.0)


class Flaky:
    def __init__(self, failures, error=BackingStoreUnavailableError):
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error()
        return "ok"


def test_read_succeeds_after_one_retry():
    op = Flaky(failures=1)
    outcome = run_with_retry(op, POLICY)
    assert outcome.succeeded
    assert outcome.value == "ok"
    assert outcome.attempts == 2


def test_exhausted_outcome_carries_last_error():
    op = Flaky(failures=5)
    outcome = run_with_retry(op, POLICY)
    assert not outcome.succeeded
    assert outcome.status == "exhausted"
    assert outcome.attempts == 2
    assert isinstance(outcome.error, BackingStoreUnavailableError)
    assert op.calls == 2
    with pytest.raises(BackingStoreUnavailableError):
        outcome.unwrap()


def test_non_retryable_errors_propagate_immediately():
    op = Flaky(failures=1, error=lambda: NotFoundError("Member", 1))
    with pytest.raises(NotFoundError):
        run_with_retry(op, POLICY)
    assert op.calls == 1


def test_async_retry():
    op = Flaky(failures=1)

    async def operation():
        return op()

    outcome = asyncio.run(arun_with_retry(operation, POLICY))
    assert outcome.succeeded
    assert outcome.attempts == 2
