"""
MediaGen API Response Utilities
Error taxonomy, uniform error envelope and exception handlers
"""
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Dict, List, Optional

from .logging_config import api_logger


# ============================================================
# SUCCESS RESPONSES
# ============================================================

def paginated(items: List, total: int, limit: int, offset: int) -> Dict:
    """Offset-paginated list response"""
    return {
        "items": items,
        "total": total,
        "limit": limit,
        "offset": offset,
    }


def deleted() -> Dict:
    return {"success": True}


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ApiException(HTTPException):
    """API exception carrying an error code and retryability"""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: str = None,
        retryable: bool = False,
        details: Dict = None,
    ):
        self.error_code = error_code or f"ERR_{status_code}"
        self.retryable = retryable
        self.details = details
        super().__init__(status_code=status_code, detail=message)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiException):
    """Bad input. Never retryable."""

    def __init__(self, message: str, details: Dict = None, error_code: str = "VALIDATION_ERROR"):
        super().__init__(400, message, error_code, retryable=False, details=details)


class NotFoundError(ApiException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(404, message, "NOT_FOUND", retryable=False)


class NetworkError(ApiException):
    """Connection-level failure talking to a remote service."""

    def __init__(self, message: str = "Network connection failed. Please check your internet connection and try again."):
        super().__init__(503, message, "NETWORK_ERROR", retryable=True)


class InternalError(ApiException):
    """Catch-all. The message is always safe to show to clients."""

    def __init__(self, message: str = "An unexpected error occurred. Please try again later."):
        super().__init__(500, message, "INTERNAL_ERROR", retryable=True)


# kind -> (code, http status, retryable, client message)
PROVIDER_ERROR_KINDS = {
    "validation": (
        "VALIDATION_ERROR", 400, False,
        "Invalid request parameters. Please check your input and try again.",
    ),
    "throttling": (
        "RATE_LIMIT_EXCEEDED", 429, True,
        "Rate limit exceeded. Please wait a moment and try again.",
    ),
    "access_denied": (
        "ACCESS_DENIED", 403, False,
        "Access denied. Please check your AWS credentials and permissions.",
    ),
    "not_found": (
        "RESOURCE_NOT_FOUND", 404, False,
        "The requested resource was not found.",
    ),
    "unavailable": (
        "SERVICE_UNAVAILABLE", 503, True,
        "The service is temporarily unavailable. Please try again later.",
    ),
    "timeout": (
        "MODEL_TIMEOUT", 504, True,
        "The model request timed out. Please try again with a simpler prompt.",
    ),
    "unknown": (
        "PROVIDER_ERROR", 502, True,
        "An error occurred while processing your request. Please try again.",
    ),
}


class ProviderError(ApiException):
    """Failure reported by the inference provider."""

    def __init__(self, kind: str, provider_code: Optional[str] = None):
        if kind not in PROVIDER_ERROR_KINDS:
            kind = "unknown"
        code, status_code, retryable, message = PROVIDER_ERROR_KINDS[kind]
        self.kind = kind
        self.provider_code = provider_code
        super().__init__(status_code, message, code, retryable=retryable)


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

def error_envelope(code: str, message: str, retryable: bool, details: Dict = None) -> Dict[str, Any]:
    error = {
        "code": code,
        "message": message,
        "retryable": retryable,
    }
    if details:
        error["details"] = details
    return {"error": error}


async def api_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler. Full detail is logged, clients get code/message/retryable."""

    if isinstance(exc, ApiException):
        api_logger.warning(
            f"API Error: {exc.detail}",
            status_code=exc.status_code,
            error_code=exc.error_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.error_code, exc.detail, exc.retryable, exc.details),
        )

    if isinstance(exc, RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content=error_envelope(
                "RATE_LIMIT_EXCEEDED",
                f"Rate limit exceeded: {exc.detail}",
                True,
            ),
        )

    if isinstance(exc, RequestValidationError):
        fields = {
            ".".join(str(part) for part in err["loc"] if part != "body"): err["msg"]
            for err in exc.errors()
        }
        return JSONResponse(
            status_code=400,
            content=error_envelope("VALIDATION_ERROR", "Invalid request", False, fields),
        )

    if isinstance(exc, StarletteHTTPException):
        api_logger.warning(
            f"HTTP Error: {exc.detail}",
            status_code=exc.status_code,
            path=request.url.path,
        )
        code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
        message = (
            f"Route {request.method} {request.url.path} not found"
            if exc.status_code == 404 else str(exc.detail)
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(code, message, exc.status_code >= 500),
        )

    api_logger.error(
        f"Unexpected error: {exc}",
        error=exc,
        method=request.method,
        path=request.url.path,
    )
    fallback = InternalError()
    return JSONResponse(
        status_code=fallback.status_code,
        content=error_envelope(fallback.error_code, fallback.detail, fallback.retryable),
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(ApiException, api_exception_handler)
    app.add_exception_handler(RateLimitExceeded, api_exception_handler)
    app.add_exception_handler(RequestValidationError, api_exception_handler)
    app.add_exception_handler(StarletteHTTPException, api_exception_handler)
    app.add_exception_handler(Exception, api_exception_handler)
