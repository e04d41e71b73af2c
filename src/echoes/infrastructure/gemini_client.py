"""Shared HTTP transport for the Gemini REST API."""

import time
from typing import Any

import httpx

from echoes.core.base import AIServiceErrorDetails, ErrorCode
from echoes.core.circuit_breaker import CircuitBreaker, RetryWithCircuitBreaker
from echoes.core.config import settings
from echoes.core.errors import (
    AuthenticationError,
    ProcessingError,
    RateLimitError,
    ServiceError,
    TimeoutError,
)
from echoes.core.logging import get_logger

logger = get_logger(__name__)


class GeminiHTTPClient:
    """POSTs JSON to Gemini and maps failures onto application errors.

    Rate limits and timeouts are retried with exponential backoff; rate
    limits, timeouts and server errors count towards the circuit breaker.
    Authentication and request errors fail immediately.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        name: str = "gemini_api",
        max_retries: int = 3,
        initial_delay: float = 1.0,
    ) -> None:
        self.api_key = settings.google_api_key.get_secret_value() if api_key is None else api_key
        self.name = name
        self.client = httpx.AsyncClient(
            base_url=base_url or settings.gemini_base_url,
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )

        self._circuit_breaker = CircuitBreaker(
            name=name,
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception_types=(RateLimitError, TimeoutError, ServiceError),
            success_threshold=2,
        )
        self._retry_handler = RetryWithCircuitBreaker(
            circuit_breaker=self._circuit_breaker,
            max_retries=max_retries,
            initial_delay=initial_delay,
            backoff_factor=2.0,
            max_delay=30.0,
            retryable_exceptions=(RateLimitError, TimeoutError),
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def _details(self, operation: str, endpoint: str, model: str | None, **extra: Any) -> AIServiceErrorDetails:
        return AIServiceErrorDetails(
            source=self.name,
            operation=operation,
            service_name="Gemini",
            endpoint=endpoint,
            model_name=model,
            **extra,
        )

    async def post(
        self,
        endpoint: str,
        payload: dict[str, Any],
        operation: str,
        model: str | None = None,
    ) -> dict[str, Any]:
        """POST ``payload`` to ``endpoint`` and return the decoded JSON body.

        Raises:
            AuthenticationError: Missing API key or 401/403
            RateLimitError: 429 after all retries
            TimeoutError: Request timed out after all retries
            ProcessingError: Other 4xx or an undecodable body
            ServiceError: 5xx, network failure or open circuit
        """
        if not self.api_key:
            raise AuthenticationError(
                message="Google API key not found in settings",
                details=self._details(operation, endpoint, model),
            )
        return await self._retry_handler.call_async(self._post, endpoint, payload, operation, model)

    async def _post(
        self,
        endpoint: str,
        payload: dict[str, Any],
        operation: str,
        model: str | None,
    ) -> dict[str, Any]:
        started = time.perf_counter()
        try:
            response = await self.client.post(
                endpoint,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(
                message=f"Gemini request timed out: {endpoint}",
                details=self._details(operation, endpoint, model, status_code=408),
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(
                message=f"Gemini request failed: {e!s}",
                details=self._details(operation, endpoint, model),
            ) from e

        latency_ms = (time.perf_counter() - started) * 1000
        status = response.status_code
        if status == 429:
            raise RateLimitError(
                message="Rate limit exceeded for Gemini API",
                details=self._details(operation, endpoint, model, status_code=status, latency_ms=latency_ms),
            )
        if status in (401, 403):
            raise AuthenticationError(
                message="Authentication failed for Gemini API",
                details=self._details(operation, endpoint, model, status_code=status, latency_ms=latency_ms),
            )
        if status >= 500:
            raise ServiceError(
                message=f"Gemini API returned {status}",
                details=self._details(operation, endpoint, model, status_code=status, latency_ms=latency_ms),
            )
        if status >= 400:
            raise ProcessingError(
                message=f"Gemini API rejected the request ({status}): {response.text[:200]}",
                code=ErrorCode.MODEL_ERROR,
                details=self._details(operation, endpoint, model, status_code=status, latency_ms=latency_ms),
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProcessingError(
                message="Gemini API returned a non-JSON body",
                code=ErrorCode.MODEL_ERROR,
                details=self._details(operation, endpoint, model, status_code=status),
            ) from e

        logger.debug("gemini_call_succeeded", endpoint=endpoint, latency_ms=round(latency_ms, 1))
        return body if isinstance(body, dict) else {}

    async def close(self) -> None:
        await self.client.aclose()
