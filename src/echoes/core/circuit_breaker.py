"""Circuit breaker and retry wrapper for calls to the Gemini API."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from echoes.core.base import ErrorCode, ServiceErrorDetails
from echoes.core.errors import RateLimitError, ServiceError, TimeoutError
from echoes.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fails fast once a provider keeps failing.

    ``failure_threshold`` consecutive failures open the circuit. After
    ``recovery_timeout`` seconds one trial call is let through (half-open), and
    ``success_threshold`` successes in a row close it again. Only exceptions in
    ``expected_exception_types`` count; a rejected API key or bad input passes
    through without tripping anything.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        expected_exception_types: tuple[type[Exception], ...] = (Exception,),
        success_threshold: int = 2,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception_types = expected_exception_types
        self.success_threshold = success_threshold

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.opened_at: float | None = None
        self.last_exception: Exception | None = None

    def _transition(self, state: CircuitState) -> None:
        logger.info("circuit_state_changed", circuit=self.name, previous=self.state.value, state=state.value)
        self.state = state
        self.success_count = 0
        if state == CircuitState.OPEN:
            self.opened_at = time.monotonic()
        elif state == CircuitState.CLOSED:
            self.failure_count = 0
            self.last_exception = None

    def allow_request(self) -> bool:
        """Whether a call may go out now; moves an expired open circuit to half-open."""
        if self.state != CircuitState.OPEN:
            return True
        if self.opened_at is not None and time.monotonic() - self.opened_at >= self.recovery_timeout:
            self._transition(CircuitState.HALF_OPEN)
            return True
        return False

    def on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        else:
            self.failure_count = 0

    def on_failure(self, exception: Exception) -> None:
        self.last_exception = exception
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            logger.error("circuit_opened", circuit=self.name, failures=self.failure_count, error=str(exception))
            self._transition(CircuitState.OPEN)

    def _rejection(self) -> ServiceError:
        reason = f" (last error: {self.last_exception})" if self.last_exception else ""
        return ServiceError(
            message=f"{self.name} is failing; calls are paused{reason}",
            code=ErrorCode.CIRCUIT_OPEN,
            details=ServiceErrorDetails(
                source="circuit_breaker",
                operation="call_async",
                service_name=self.name,
                status_code=503,
            ),
        )

    async def call_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func`` unless the circuit is open.

        Raises:
            ServiceError: With ``CIRCUIT_OPEN`` while the circuit rejects calls
        """
        if not self.allow_request():
            raise self._rejection()
        try:
            result = await func(*args, **kwargs)
        except self.expected_exception_types as e:
            self.on_failure(e)
            raise
        self.on_success()
        return result

    def get_state(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_exception": str(self.last_exception) if self.last_exception else None,
        }


class RetryWithCircuitBreaker:
    """Retries transient failures with exponential backoff, through a breaker.

    Rate limits and timeouts are retried up to ``max_retries`` attempts in
    total; everything else (including an open circuit) is raised at once.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        backoff_factor: float = 2.0,
        max_delay: float = 30.0,
        retryable_exceptions: tuple[type[Exception], ...] = (RateLimitError, TimeoutError),
    ):
        self.circuit_breaker = circuit_breaker
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions

    async def call_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        delay = self.initial_delay
        attempt = 1
        while True:
            try:
                return await self.circuit_breaker.call_async(func, *args, **kwargs)
            except self.retryable_exceptions as e:
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    "provider_call_retrying",
                    circuit=self.circuit_breaker.name,
                    error_type=type(e).__name__,
                    attempt=attempt,
                    delay=delay,
                )
            await asyncio.sleep(delay)
            delay = min(delay * self.backoff_factor, self.max_delay)
            attempt += 1
