"""
Retry utility module with exponential backoff and circuit breaker patterns.
"""

import asyncio
import logging
import random
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Tuple,
    Type,
    TypeVar,
    cast,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')
AsyncCallable = Callable[..., Awaitable[T]]


class CircuitOpenError(Exception):
    """Raised when every attempt was refused by an open circuit breaker."""

    def __init__(self, name: str):
        super().__init__(f"Circuit breaker for {name} is open")
        self.name = name


class CircuitBreaker:
    """Circuit breaker guarding a flaky dependency such as the database."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 120.0
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time: float = 0.0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF-OPEN

    def record_failure(self) -> None:
        """Record a failure and potentially open the circuit."""
        self.failures += 1
        self.last_failure_time = asyncio.get_event_loop().time()
        if self.failures >= self.failure_threshold:
            if self.state != "OPEN":
                logger.warning(
                    f"Circuit breaker for {self.name} opened after "
                    f"{self.failures} failures"
                )
            self.state = "OPEN"

    def record_success(self) -> None:
        """Record a success and reset the circuit."""
        if self.state != "CLOSED":
            logger.info(f"Circuit breaker for {self.name} closed after success")
        self.failures = 0
        self.state = "CLOSED"

    def is_open(self) -> bool:
        """Check if circuit is open, moving to half-open once it cooled down."""
        if self.state == "OPEN":
            current_time = asyncio.get_event_loop().time()
            if current_time - self.last_failure_time >= self.reset_timeout:
                self.state = "HALF-OPEN"
                logger.info(
                    f"Circuit breaker for {self.name} entering half-open state"
                )
                return False
            return True
        return False


async def with_retry(
    operation: AsyncCallable[Any],
    max_attempts: int = 5,
    initial_delay: float = 5.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: float = 0.1,
    circuit_breaker: Optional[CircuitBreaker] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    operation_args: tuple = (),
    operation_kwargs: Optional[dict] = None
) -> Any:
    """
    Execute an async operation with exponential backoff retry logic.

    Args:
        operation: Async function to execute
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff
        jitter: Random jitter factor applied to each delay
        circuit_breaker: Optional circuit breaker instance
        retry_on: Exception types that trigger another attempt; anything
            else is raised immediately
        operation_args: Positional arguments for the operation
        operation_kwargs: Keyword arguments for the operation

    Returns:
        The result of the operation if successful

    Raises:
        The last exception raised by the operation, or CircuitOpenError
        when the circuit breaker refused every attempt
    """
    operation_kwargs = operation_kwargs or {}
    delay = initial_delay
    last_exception: Optional[BaseException] = None

    for attempt in range(max_attempts):
        if circuit_breaker and circuit_breaker.is_open():
            logger.warning(
                f"Circuit breaker for {circuit_breaker.name} is open, "
                "skipping attempt"
            )
            await asyncio.sleep(min(delay, max_delay))
            continue

        try:
            async_op = cast(AsyncCallable[Any], operation)
            result = await async_op(*operation_args, **operation_kwargs)
        except retry_on as e:
            last_exception = e

            if circuit_breaker:
                circuit_breaker.record_failure()

            if attempt == max_attempts - 1:
                logger.error(
                    f"Operation failed after {max_attempts} attempts: {e}"
                )
                raise

            jitter_amount = delay * jitter * random.uniform(-1.0, 1.0)
            actual_delay = max(0.0, min(delay + jitter_amount, max_delay))

            logger.warning(
                f"Operation failed (attempt {attempt + 1}/{max_attempts}), "
                f"retrying in {actual_delay:.2f}s: {e}"
            )

            await asyncio.sleep(actual_delay)
            delay = min(delay * exponential_base, max_delay)
            continue

        if circuit_breaker:
            circuit_breaker.record_success()
        return result

    if last_exception:
        raise last_exception
    raise CircuitOpenError(circuit_breaker.name if circuit_breaker else "unknown")
