import pytest

from companion.shared.utils.retry import (
    CircuitBreaker,
    CircuitOpenError,
    with_retry,
)


class Flaky:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("not yet")
        return value


@pytest.mark.asyncio
async def test_retries_until_success():
    operation = Flaky(failures=2)
    breaker = CircuitBreaker("test", failure_threshold=5)

    result = await with_retry(
        operation, max_attempts=3, initial_delay=0.0,
        circuit_breaker=breaker, operation_args=("ok",),
    )

    assert result == "ok"
    assert operation.calls == 3
    assert breaker.state == "CLOSED"
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_last_error_is_raised():
    operation = Flaky(failures=10)

    with pytest.raises(ConnectionError):
        await with_retry(operation, max_attempts=2, initial_delay=0.0,
                         operation_args=("ok",))
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_unlisted_errors_are_not_retried():
    async def broken():
        raise KeyError("bad input")

    with pytest.raises(KeyError):
        await with_retry(broken, max_attempts=5, initial_delay=0.0,
                         retry_on=(ConnectionError,))


@pytest.mark.asyncio
async def test_open_circuit_refuses_attempts():
    breaker = CircuitBreaker("test", failure_threshold=1, reset_timeout=60.0)
    breaker.record_failure()
    operation = Flaky(failures=0)

    with pytest.raises(CircuitOpenError):
        await with_retry(operation, max_attempts=2, initial_delay=0.0,
                         circuit_breaker=breaker, operation_args=("ok",))
    assert operation.calls == 0
