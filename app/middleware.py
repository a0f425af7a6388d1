"""
Custom middleware for security headers and request logging.
"""
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import get_logger

request_logger = get_logger("requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Generated media is fetched cross-origin by the frontend, API JSON is not framed
        if not request.url.path.startswith("/api/media/"):
            response.headers["X-Frame-Options"] = "DENY"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with its status and duration."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = uuid.uuid4().hex[:12]
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                f"{request.method} {request.url.path} -> ERROR",
                error=e,
                request_id=request_id,
                duration_ms=round((time.time() - start_time) * 1000, 2),
            )
            raise

        process_time = time.time() - start_time
        level = "info" if response.status_code < 400 else "warning" if response.status_code < 500 else "error"
        getattr(request_logger, level)(
            f"{request.method} {request.url.path} -> {response.status_code}",
            request_id=request_id,
            status_code=response.status_code,
            duration_ms=round(process_time * 1000, 2),
        )

        response.headers["X-Process-Time"] = str(process_time)
        response.headers["X-Request-Id"] = request_id
        return response
