"""
Main application entry point for the GoldSphere order service.
Sets up the FastAPI app, routers, middleware, and the database lifecycle.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from goldsphere.api.v1.router import api_router
from goldsphere.api.v1.endpoints import health
from goldsphere.core.config import Settings, get_settings
from goldsphere.core.database import PostgresDB
from goldsphere.core.error_handling import AppError, ErrorTracker
from goldsphere.middleware.auth import AuthMiddleware
from goldsphere.middleware.error_middleware import ErrorHandlingMiddleware, error_body

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# Request ID middleware
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage the database connection for the lifetime of the application.

    A database handed to ``create_application`` is used as is and left
    open on shutdown; otherwise one is created from settings, connected
    here and disposed on shutdown.
    """
    logger.info("Starting application...")

    owns_db = getattr(app.state, "db", None) is None
    if owns_db:
        db = PostgresDB(settings=app.state.settings)
        db.connect()
        app.state.db = db

    logger.info("Application started successfully")
    yield

    logger.info("Shutting down application...")
    if owns_db:
        app.state.db.disconnect()
        app.state.db = None
    logger.info("Database connections closed")


def create_application(settings: Optional[Settings] = None, db: Optional[PostgresDB] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (uses singleton if not provided)
        db: Already connected database to serve requests with
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="GoldSphere order lifecycle API",
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    app.state.settings = settings
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Order matters: the last added middleware runs first
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(AuthMiddleware, api_prefix=settings.API_PREFIX)
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            exc.log(logger)
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        ErrorTracker.track_error(exc)

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(
                exc.message,
                exc.detail.error_category.value,
                exc.detail.error_code,
                getattr(request.state, "request_id", None),
            ),
            headers=headers,
        )

    app.include_router(api_router, prefix=settings.API_PREFIX)
    app.include_router(health.router, prefix="/health", tags=["Health"])

    @app.get("/", tags=["Root"])
    def root():
        """Root endpoint that points to the documentation."""
        return {"message": f"Welcome to {settings.APP_NAME}. See /docs for API documentation."}

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "goldsphere.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().DEBUG,
    )
