"""
Error handling middleware for the GoldSphere order service.

Catches exceptions that escaped the route-level exception handlers, turns
them into the standard error body, and stamps timing and request id
headers on every response.
"""

import logging
import time
import traceback
from typing import Any, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from goldsphere.core.error_handling import AppError, ErrorCategory, ErrorTracker

logger = logging.getLogger(__name__)


def error_body(
    message: str,
    error_type: str,
    error_code: Optional[str] = None,
    request_id: Optional[str] = None,
    traceback_text: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build the JSON body shared by every error response.

    Args:
        message: Human-readable error message
        error_type: Error category
        error_code: Machine-readable code
        request_id: Request id for tracing
        traceback_text: Traceback, only included in debug mode
    """
    body: Dict[str, Any] = {
        "detail": message,
        "type": error_type,
        "code": error_code or error_type,
        "request_id": request_id,
    }
    if traceback_text:
        body["traceback"] = traceback_text
    return body


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for handling and standardizing errors in the application.
    """
    
    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        request_id = getattr(request.state, "request_id", None)
        
        try:
            response = await call_next(request)
        except AppError as app_err:
            app_err.log(logger)
            ErrorTracker.track_error(app_err)
            response = JSONResponse(
                status_code=app_err.status_code,
                content=error_body(
                    app_err.message,
                    app_err.detail.error_category.value,
                    app_err.detail.error_code,
                    request_id,
                ),
            )
        except Exception as e:
            logger.error(
                f"Unhandled exception in request {request.method} {request.url.path}: {e}",
                exc_info=True
            )
            ErrorTracker.track_error(e, ErrorCategory.UNKNOWN)

            # Internals only leave the process in debug mode
            debug = request.app.debug
            response = JSONResponse(
                status_code=HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body(
                    f"Internal server error: {e}" if debug else "An unexpected error occurred",
                    ErrorCategory.UNKNOWN.value,
                    "internal_error",
                    request_id,
                    traceback.format_exc() if debug else None,
                ),
            )

        process_time = (time.time() - start_time) * 1000
        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        return response
