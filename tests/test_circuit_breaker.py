import asyncio

import pytest

from echoes.core.base import ErrorCode
from echoes.core.circuit_breaker import CircuitBreaker, CircuitState, RetryWithCircuitBreaker
from echoes.core.errors import AuthenticationError, ServiceError, TimeoutError


async def failing(error: Exception):
    raise error


async def succeeding():
    return "ok"


def test_opens_after_threshold_and_rejects_calls():
    breaker = CircuitBreaker("test", failure_threshold=2, expected_exception_types=(ServiceError,))

    async def scenario():
        for _ in range(2):
            with pytest.raises(ServiceError):
                await breaker.call_async(failing, ServiceError(message="boom"))
        with pytest.raises(ServiceError) as excinfo:
            await breaker.call_async(succeeding)
        return excinfo.value

    error = asyncio.run(scenario())
    assert breaker.state == CircuitState.OPEN
    assert error.code == ErrorCode.CIRCUIT_OPEN


def test_unexpected_exceptions_do_not_count():
    breaker = CircuitBreaker("test", failure_threshold=1, expected_exception_types=(ServiceError,))

    with pytest.raises(AuthenticationError):
        asyncio.run(breaker.call_async(failing, AuthenticationError(message="no key")))
    assert breaker.state == CircuitState.CLOSED


def test_half_open_recovers_after_successes():
    breaker = CircuitBreaker(
        "test",
        failure_threshold=1,
        recovery_timeout=0.0,
        expected_exception_types=(ServiceError,),
        success_threshold=2,
    )

    async def scenario():
        with pytest.raises(ServiceError):
            await breaker.call_async(failing, ServiceError(message="boom"))
        assert breaker.state == CircuitState.OPEN
        await breaker.call_async(succeeding)
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.call_async(succeeding)

    asyncio.run(scenario())
    assert breaker.state == CircuitState.CLOSED
    assert breaker.get_state()["failure_count"] == 0


def test_retry_handler_retries_only_retryable_errors():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise TimeoutError(message="slow")
        return "done"

    handler = RetryWithCircuitBreaker(
        CircuitBreaker("test", failure_threshold=10, expected_exception_types=(TimeoutError,)),
        max_retries=3,
        initial_delay=0,
    )
    assert asyncio.run(handler.call_async(flaky)) == "done"
    assert len(attempts) == 3

    with pytest.raises(AuthenticationError):
        asyncio.run(handler.call_async(failing, AuthenticationError(message="no key")))
