"""
Authentication middleware for the GoldSphere order service.

This middleware rejects API requests that carry no credentials at all.
Token validation and the database re-check of the user happen in the
``get_current_principal`` dependency used by each route.
"""

import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.status import HTTP_401_UNAUTHORIZED

logger = logging.getLogger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Lightweight middleware that ensures protected paths carry credentials.
    """

    def __init__(self, app, api_prefix: str = "/api/v1"):
        super().__init__(app)
        self.api_prefix = api_prefix.rstrip("/") + "/"

    async def dispatch(self, request: Request, call_next) -> Response:
        """
        Reject credential-less requests to protected paths.
        
        Args:
            request: The incoming request
            call_next: The next middleware or route handler
            
        Returns:
            The response from the next handler, or a 401 response
        """
        request.state.user = None

        if request.method == "OPTIONS" or not self._requires_auth(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            logger.debug(f"Missing credentials for {request.method} {request.url.path}")
            return self._auth_error_response(request, "Authentication required")

        return await call_next(request)

    def _requires_auth(self, path: str) -> bool:
        """
        Determine if a path requires authentication.
        
        Args:
            path: Request path
            
        Returns:
            True for every path under the API prefix
        """
        return path.startswith(self.api_prefix)

    def _auth_error_response(self, request: Request, detail: str) -> JSONResponse:
        """
        Create a standardized authentication error response.
        """
        return JSONResponse(
            status_code=HTTP_401_UNAUTHORIZED,
            content={
                "detail": detail,
                "type": "authentication",
                "code": "authentication",
                "request_id": getattr(request.state, "request_id", None),
            },
            headers={"WWW-Authenticate": "Bearer"}
        )
