"""Error handlers for the HTTP surface"""

from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from echoes.core.logging import get_logger

from .base import ApplicationError, ErrorCode, ErrorLevel
from .error_context import ErrorContext, ErrorContextManager

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.AUTHORIZATION_FAILED: status.HTTP_403_FORBIDDEN,
    ErrorCode.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CIRCUIT_OPEN: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DB_CONNECTION: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.GENERATION_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class ErrorHandler:
    """Formats application errors into response payloads"""

    def format_response(self, error_context: ErrorContext, level: ErrorLevel) -> dict[str, Any]:
        response: dict[str, Any] = {
            "error": str(error_context.error),
            "error_code": ErrorCode.PROCESSING_FAILED.value,
            "level": level.value,
            "trace_id": error_context.trace_id,
            "timestamp": error_context.timestamp.isoformat(),
        }

        # Include rich structured data if it's an ApplicationError
        if isinstance(error_context.error, ApplicationError):
            response["error_code"] = error_context.error.code.value
            response["details"] = error_context.error.details.model_dump(mode="json")

        return response

    def status_for(self, error: Exception) -> int:
        if isinstance(error, ApplicationError):
            return STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        return status.HTTP_500_INTERNAL_SERVER_ERROR

    async def handle_application_error(self, request: Request, error: ApplicationError) -> JSONResponse:
        """FastAPI exception handler for ApplicationError."""
        async with ErrorContextManager(error, path=request.url.path) as ctx:
            logger.log(
                error.level.to_logging_level(),
                f"Request failed: {error.message}",
                extra=ctx.to_dict(),
            )
            payload = self.format_response(ctx, error.level)
        return JSONResponse(status_code=self.status_for(error), content=payload)
